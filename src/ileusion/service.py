"""ILEusion service client.

``IleusionService`` is the entry point for talking to an ILEusion instance
on IBM i. Every public operation returns a ``Result`` and never raises; the
most recent outcome is also kept on the instance (``last_error``,
``last_json_response`` and friends) for callers that poll diagnostics.

Usage:
    from ileusion import IleusionService, ServiceConfig

    with IleusionService(ServiceConfig(service_url="https://ibmi:8080")) as svc:
        result = svc.execute_sql_query("SELECT * FROM QIWS.QCUSTCDT")
        if result:
            print(svc.query_results_to_csv_string().value)
        else:
            print(result.error.kind, result.error.message)

One instance holds one query result table and one set of diagnostics, so
do not share an instance between threads without a lock.
"""

import functools
import logging
import urllib.parse
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import httpx

from . import export
from .classify import Verdict, classify_command, classify_non_query, classify_sql_query, is_transport_error
from .config import ServiceConfig
from .jsonpath import (
    TokenNotFoundError,
    as_bool,
    as_double,
    as_float,
    as_int,
    as_string,
    get_json_value,
)
from .models import ErrorKind, LastCall, Result
from .payloads import (
    ClCommandRequest,
    DataQueuePopRequest,
    DataQueueSendRequest,
    QshCommandRequest,
    ServiceRequest,
    SqlNonQueryRequest,
    SqlQueryRequest,
)
from .table import DEFAULT_TABLE_NAME, Table
from .transport import HttpTransport, decode_base64, encode_base64

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ConfigurationError(Exception):
    """Raised inside operations for missing or invalid settings."""


def _error_kind(exc: Exception) -> ErrorKind:
    if isinstance(exc, ConfigurationError):
        return ErrorKind.CONFIGURATION
    if isinstance(exc, httpx.HTTPError):
        return ErrorKind.TRANSPORT
    return ErrorKind.CONVERSION


def operation(func: Callable) -> Callable:
    """Wrap a public operation taking the service as first argument.

    The outermost operation clears the last-call state on entry and records
    its result on exit; nested operations leave that to their caller. Any
    exception is logged and turned into a failed ``Result``.
    """
    @functools.wraps(func)
    def wrapper(service: "IleusionService", *args, **kwargs):
        outermost = service._depth == 0
        if outermost:
            service._last.clear()

        service._depth += 1
        try:
            result = func(service, *args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__name__} failed: {e}")
            result = Result.failure(_error_kind(e), str(e) or type(e).__name__)
        finally:
            service._depth -= 1

        if outermost and isinstance(result, Result):
            service._last.last_result = result
            if not result.ok:
                service._last.last_error = result.message
        return result

    return wrapper


class IleusionService:
    """Client for one ILEusion microservice instance."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config or ServiceConfig()
        self._transport_override = transport
        self._http: Optional[HttpTransport] = None
        self._last = LastCall()
        self._table: Optional[Table] = None
        self._depth = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _http_transport(self) -> HttpTransport:
        if self._http is None:
            self._http = HttpTransport(self.config, transport=self._transport_override)
        return self._http

    def _reset_transport(self) -> None:
        """Drop the HTTP client so the next call picks up new TLS/timeout settings."""
        if self._http is not None:
            self._http.close()
            self._http = None

    def close(self) -> None:
        self._reset_transport()

    def __enter__(self) -> "IleusionService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @operation
    def set_service_url(self, service_url: str) -> Result:
        """Set the base URL of the ILEusion server, e.g. ``https://ibmi:8080``."""
        url = (service_url or "").strip()
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as e:
            raise ConfigurationError(f"Invalid service URL '{service_url}': {e}")
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ConfigurationError(
                f"Invalid service URL '{service_url}'. Expected http(s)://host[:port]"
            )
        self.config.service_url = url
        return Result.success(url)

    @operation
    def set_http_timeout(self, http_timeout: int) -> Result:
        """Set the request timeout in milliseconds."""
        if isinstance(http_timeout, bool) or not isinstance(http_timeout, int) or http_timeout <= 0:
            raise ConfigurationError(f"HTTP timeout must be a positive number of milliseconds, got {http_timeout!r}")
        self.config.http_timeout = http_timeout
        self._reset_transport()
        return Result.success(http_timeout)

    @operation
    def set_user_info(
        self,
        user: str,
        password: str,
        use_http_credentials: bool,
        encode_auth_base64: bool = True,
        allow_invalid_certificates: bool = False,
    ) -> Result:
        """Set the IBM i user, which is also the default HTTP auth user."""
        self.config.user = user
        self.config.password = password
        self.config.http_user = ""
        self.config.http_password = ""
        self.config.use_http_credentials = use_http_credentials
        self.config.encode_auth_base64 = encode_auth_base64
        if self.config.allow_invalid_certificates != allow_invalid_certificates:
            self.config.allow_invalid_certificates = allow_invalid_certificates
            self._reset_transport()
        return Result.success()

    @operation
    def set_http_user_info(self, user: str, password: str, use_http_credentials: bool) -> Result:
        """Override the HTTP auth user when it differs from the IBM i user."""
        self.config.http_user = user
        self.config.http_password = password
        self.config.use_http_credentials = use_http_credentials
        return Result.success()

    @operation
    def configure(
        self,
        service_url: str,
        user: str,
        password: str,
        use_http_credentials: bool,
        http_timeout: int = 10000,
        http_user: str = "",
        http_password: str = "",
        encode_auth_base64: bool = True,
        allow_invalid_certificates: bool = False,
    ) -> Result:
        """Set all connection settings in one call."""
        step = self.set_service_url(service_url)
        if not step:
            return step

        step = self.set_http_timeout(http_timeout)
        if not step:
            return step

        self.set_user_info(
            user,
            password,
            use_http_credentials,
            encode_auth_base64=encode_auth_base64,
            allow_invalid_certificates=allow_invalid_certificates,
        )

        if http_user.strip() and http_password.strip():
            step = self.set_http_user_info(http_user, http_password, use_http_credentials)
            if not step:
                return step

        logger.info(f"Configured ILEusion service at {self.config.service_url}")
        logger.debug(f"Connection settings: {self.config.redacted()}")
        return Result.success()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @property
    def last_error(self) -> str:
        return self._last.last_error

    @property
    def last_json_response(self) -> str:
        return self._last.last_json_response

    @property
    def last_http_status(self) -> str:
        return self._last.last_http_status

    @property
    def last_http_response_data(self) -> str:
        return self._last.last_http_response_data

    @property
    def last_result(self) -> Optional[Result]:
        return self._last.last_result

    def get_last_error(self) -> str:
        return self._last.last_error

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _post(self, endpoint: str, body: Union[str, Dict[str, Any]]) -> str:
        if not self.config.service_url.strip():
            raise ConfigurationError("Service URL is not set. Call set_service_url first.")

        url = self.config.endpoint(endpoint)
        logger.debug(f"POST {url}")
        response = self._http_transport().post(url, body)

        self._last.last_http_status = response.status_line
        self._last.last_http_response_data = response.text
        self._last.last_json_response = response.text
        return response.text

    def _send(self, request: ServiceRequest) -> str:
        return self._post(request.endpoint, request.to_json())

    def _reject(self, verdict: Verdict) -> Result:
        if verdict.kind == ErrorKind.TRANSPORT:
            logger.error(verdict.message)
        else:
            logger.warning(verdict.message)
        return Result.failure(verdict.kind, verdict.message)

    # ------------------------------------------------------------------
    # SQL
    # ------------------------------------------------------------------

    @operation
    def execute_sql_non_query(self, sql: str) -> Result:
        """Run an INSERT/UPDATE/DELETE/DDL statement. Value is the raw reply."""
        self._table = None
        text = self._send(SqlNonQueryRequest(sql))

        verdict = classify_non_query(text)
        if not verdict.ok:
            return self._reject(verdict)

        logger.info("SQL statement completed")
        return Result.success(text)

    @operation
    def execute_sql_query(self, sql: str, table_name: str = DEFAULT_TABLE_NAME) -> Result:
        """Run a SELECT and hold the rows as the current query results table."""
        self._table = None
        text = self._send(SqlQueryRequest(sql))

        verdict = classify_sql_query(text)
        if not verdict.ok:
            return self._reject(verdict)

        try:
            table = Table.from_json(text, table_name)
        except ValueError as e:
            message = f"SQL query failed. Unable to convert results to a table: {e}"
            logger.warning(message)
            return Result.failure(ErrorKind.CONVERSION, message)

        self._table = table
        logger.info(f"SQL query returned {len(table)} rows, {len(table.columns)} columns")
        return Result.success(table)

    def _query_then(self, sql: str, table_name: str, then: Callable[[Table], Result]) -> Result:
        result = self.execute_sql_query(sql, table_name)
        if not result:
            return Result.failure(result.kind, f"Query failed. Error: {result.message}")
        return then(result.value)

    @operation
    def execute_sql_query_to_table(self, sql: str, table_name: str = DEFAULT_TABLE_NAME) -> Result:
        return self._query_then(sql, table_name, Result.success)

    @operation
    def execute_sql_query_to_list(
        self,
        sql: str,
        first_row_column_names: bool = False,
        table_name: str = DEFAULT_TABLE_NAME,
    ) -> Result:
        return self._query_then(
            sql, table_name, lambda t: Result.success(t.to_list(first_row_column_names))
        )

    @operation
    def execute_sql_query_to_csv_string(
        self,
        sql: str,
        separator: str = ",",
        quote: str = '"',
        table_name: str = DEFAULT_TABLE_NAME,
    ) -> Result:
        return self._query_then(
            sql, table_name, lambda t: self.query_results_to_csv_string(separator, quote)
        )

    @operation
    def execute_sql_query_to_csv_file(
        self,
        sql: str,
        output_file: PathLike,
        replace: bool = False,
        separator: str = ",",
        quote: str = '"',
        table_name: str = DEFAULT_TABLE_NAME,
    ) -> Result:
        return self._query_then(
            sql,
            table_name,
            lambda t: self.query_results_to_csv_file(output_file, separator, quote, replace=replace),
        )

    @operation
    def execute_sql_query_to_xml_string(
        self,
        sql: str,
        table_name: str = DEFAULT_TABLE_NAME,
        write_schema: bool = False,
    ) -> Result:
        table_name = (table_name or "").strip() or DEFAULT_TABLE_NAME
        return self._query_then(
            sql, table_name, lambda t: self.query_results_to_xml_string(table_name, write_schema)
        )

    @operation
    def execute_sql_query_to_xml_file(
        self,
        sql: str,
        output_file: PathLike,
        replace: bool = False,
        table_name: str = DEFAULT_TABLE_NAME,
        write_schema: bool = False,
    ) -> Result:
        return self._query_then(
            sql,
            table_name,
            lambda t: self.query_results_to_xml_file(output_file, table_name, write_schema, replace=replace),
        )

    @operation
    def execute_sql_query_to_json_string(self, sql: str, table_name: str = DEFAULT_TABLE_NAME) -> Result:
        return self._query_then(sql, table_name, lambda t: self.query_results_to_json_string())

    @operation
    def execute_sql_query_to_json_file(
        self,
        sql: str,
        output_file: PathLike,
        replace: bool = False,
        table_name: str = DEFAULT_TABLE_NAME,
    ) -> Result:
        return self._query_then(
            sql, table_name, lambda t: self.query_results_to_json_file(output_file, replace=replace)
        )

    # ------------------------------------------------------------------
    # Held query results
    # ------------------------------------------------------------------

    @property
    def query_results(self) -> Optional[Table]:
        """Table from the last successful query, or None."""
        return self._table

    def _require_table(self) -> Table:
        if self._table is None:
            raise ValueError("No query results available. Run a query first.")
        return self._table

    @operation
    def get_query_results(self) -> Result:
        if self._table is None:
            return Result.failure(ErrorKind.NOT_FOUND, "No query results available. Run a query first.")
        return Result.success(self._table)

    @operation
    def query_results_to_csv_string(self, separator: str = ",", quote: str = '"') -> Result:
        return Result.success(export.to_csv(self._require_table(), separator, quote))

    @operation
    def query_results_to_csv_file(
        self,
        output_file: PathLike,
        separator: str = ",",
        quote: str = '"',
        replace: bool = False,
    ) -> Result:
        text = export.to_csv(self._require_table(), separator, quote)
        return Result.success(export.write_text_file(output_file, text, replace))

    @operation
    def query_results_to_xml_string(
        self,
        table_name: str = DEFAULT_TABLE_NAME,
        write_schema: bool = False,
    ) -> Result:
        table = self._require_table()
        table_name = (table_name or "").strip() or DEFAULT_TABLE_NAME
        table.name = table_name
        return Result.success(export.to_xml(table, table_name, write_schema))

    @operation
    def query_results_to_xml_file(
        self,
        output_file: PathLike,
        table_name: str = DEFAULT_TABLE_NAME,
        write_schema: bool = False,
        replace: bool = False,
    ) -> Result:
        xml = self.query_results_to_xml_string(table_name, write_schema)
        if not xml:
            return xml
        return Result.success(export.write_text_file(output_file, xml.value, replace))

    @operation
    def query_results_to_json_string(self) -> Result:
        return Result.success(export.to_json(self._require_table()))

    @operation
    def query_results_to_json_file(self, output_file: PathLike, replace: bool = False) -> Result:
        text = export.to_json(self._require_table())
        return Result.success(export.write_text_file(output_file, text, replace))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @operation
    def execute_command(self, command: str) -> Result:
        """Run a CL command. Value is the raw reply."""
        text = self._send(ClCommandRequest(command))
        verdict = classify_command(text, "Command call")
        if not verdict.ok:
            return self._reject(verdict)
        logger.info(f"CL command completed: {command.split(' ', 1)[0]}")
        return Result.success(text)

    @operation
    def execute_qshell_command(self, command: str) -> Result:
        """Run a Qshell command. Value is the raw reply."""
        text = self._send(QshCommandRequest(command))
        verdict = classify_command(text, "Qshell command call")
        if not verdict.ok:
            return self._reject(verdict)
        logger.info("Qshell command completed")
        return Result.success(text)

    @operation
    def execute_json_api_call(self, payload: Union[str, Dict[str, Any]], api_name: str) -> Result:
        """POST any JSON document to any endpoint and return the raw reply.

        ``api_name`` is lower-cased and gets a leading slash if missing, so
        ``"CALL"`` posts to ``/call``. Only transport failures fail the
        result; the reply is not classified.
        """
        if not payload or (isinstance(payload, str) and payload.strip() == ""):
            raise ConfigurationError("No ILEusion JSON request data passed. API call cancelled.")
        if not (api_name or "").strip():
            raise ConfigurationError("No ILEusion API name passed. API call cancelled.")

        endpoint = api_name.strip().lower()
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint

        text = self._post(endpoint, payload)
        if is_transport_error(text):
            logger.error(text)
            return Result.failure(ErrorKind.TRANSPORT, text)
        return Result.success(text)

    # ------------------------------------------------------------------
    # Data queues
    # ------------------------------------------------------------------

    @operation
    def send_to_data_queue(self, queue: str, library: str, data: str) -> Result:
        text = self._send(DataQueueSendRequest(library=library, object=queue, data=data))
        verdict = classify_command(text, "Data queue send")
        if not verdict.ok:
            return self._reject(verdict)
        logger.info(f"Sent entry to data queue {library.strip().upper()}/{queue.strip().upper()}")
        return Result.success(text)

    @operation
    def receive_from_data_queue(self, queue: str, library: str) -> Result:
        """Pop one entry. Value is the entry text; a null entry reads as ``""``."""
        text = self._send(DataQueuePopRequest(library=library, object=queue))
        verdict = classify_command(text, "Data queue receive")
        if not verdict.ok:
            return self._reject(verdict)

        try:
            value = get_json_value(text, "value")
        except (TokenNotFoundError, ValueError) as e:
            message = f"Data queue receive failed. Reply has no value: {e}"
            logger.warning(message)
            return Result.failure(ErrorKind.MALFORMED, message)

        return Result.success("" if value is None else as_string(value))

    # ------------------------------------------------------------------
    # JSON values
    # ------------------------------------------------------------------

    @operation
    def find_json_value(self, json_text: str, path: str) -> Result:
        """Look up ``path``; fails with ``ErrorKind.NOT_FOUND`` when absent."""
        try:
            return Result.success(get_json_value(json_text, path))
        except TokenNotFoundError as e:
            return Result.failure(ErrorKind.NOT_FOUND, str(e))
        except ValueError as e:
            return Result.failure(ErrorKind.MALFORMED, f"Unable to read JSON value '{path}': {e}")

    def _typed_value(self, json_text: str, path: str, convert: Callable[[Any], Any], default: Any) -> Any:
        found = self.find_json_value(json_text, path)
        if not found:
            self._last.last_error = found.message
            return default
        try:
            return convert(found.value)
        except (TypeError, ValueError, OverflowError) as e:
            self._last.last_error = f"Value at '{path}' cannot be converted: {e}"
            return default

    @operation
    def get_json_value_as_string(self, json_text: str, path: str) -> str:
        return self._typed_value(json_text, path, as_string, "")

    @operation
    def get_json_value_as_int(self, json_text: str, path: str) -> int:
        return self._typed_value(json_text, path, as_int, 0)

    @operation
    def get_json_value_as_double(self, json_text: str, path: str) -> float:
        return self._typed_value(json_text, path, as_double, 0.0)

    @operation
    def get_json_value_as_float(self, json_text: str, path: str) -> float:
        return self._typed_value(json_text, path, as_float, 0.0)

    @operation
    def get_json_value_as_bool(self, json_text: str, path: str) -> bool:
        return self._typed_value(json_text, path, as_bool, False)

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    @operation
    def convert_json_to_table(self, json_text: str, table_name: str = DEFAULT_TABLE_NAME) -> Result:
        return Result.success(Table.from_json(json_text, table_name))

    @operation
    def convert_json_to_list(self, json_text: str, first_row_column_names: bool = False) -> Result:
        return Result.success(Table.from_json(json_text).to_list(first_row_column_names))

    @operation
    def convert_table_to_list(self, table: Table, first_row_column_names: bool = False) -> Result:
        return Result.success(table.to_list(first_row_column_names))

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    @staticmethod
    def encode_string_to_base64(value: str) -> str:
        return encode_base64(value)

    @staticmethod
    def decode_string_from_base64(value: str) -> str:
        return decode_base64(value)

    @staticmethod
    def encode_url(value: str) -> str:
        return urllib.parse.quote_plus(value)
