"""Tests for IleusionService against a fake ILEusion server."""

import base64
import json
import logging

import httpx
import pytest

from ileusion import ErrorKind, IleusionService, ServiceConfig, Table
from ileusion.transport import HTTP_ERROR_PREFIX

QUERY = "SELECT * FROM QIWS.QCUSTCDT"


class TestConfiguration:
    """Test connection settings."""

    def test_set_service_url(self, service):
        """The URL is trimmed and stored."""
        result = service.set_service_url(" http://ibmi:8080 ")
        assert result
        assert service.config.service_url == "http://ibmi:8080"

    @pytest.mark.parametrize("url", ["", "ibmi:8080", "ftp://ibmi", "http://"])
    def test_set_service_url_rejects_bad_urls(self, service, url):
        """Only http(s) URLs with a host are accepted."""
        result = service.set_service_url(url)
        assert not result
        assert result.kind == ErrorKind.CONFIGURATION
        assert service.last_error == result.message

    @pytest.mark.parametrize("timeout", [0, -5, "100", True])
    def test_set_http_timeout_rejects_bad_values(self, service, timeout):
        """The timeout must be a positive int."""
        result = service.set_http_timeout(timeout)
        assert result.kind == ErrorKind.CONFIGURATION

    def test_set_http_timeout(self, service):
        """The timeout is stored in milliseconds."""
        assert service.set_http_timeout(2500)
        assert service.config.timeout_seconds == 2.5

    def test_missing_url_is_configuration_error(self, server):
        """Nothing is sent until a URL is set."""
        svc = IleusionService(ServiceConfig(), transport=httpx.MockTransport(server.handler))
        result = svc.execute_command("DSPLIBL")

        assert result.kind == ErrorKind.CONFIGURATION
        assert "Service URL is not set" in svc.last_error
        assert server.requests == []

    def test_configure_sends_http_auth(self, service, server):
        """HTTP user overrides the IBM i user in the Authorization header."""
        assert service.configure(
            "https://ibmi.example.com:8080",
            "QUSER",
            "secret",
            use_http_credentials=True,
            http_user="WEBUSER",
            http_password="webpw",
        )
        server.reply({"success": True})
        service.execute_command("DSPLIBL")

        token = server.last_request.headers["Authorization"].split(" ", 1)[1]
        assert base64.b64decode(token).decode() == "WEBUSER:webpw"

    def test_configure_stops_on_bad_url(self, service):
        """A bad URL stops configure before anything changes."""
        result = service.configure("not a url", "QUSER", "secret", False)
        assert result.kind == ErrorKind.CONFIGURATION
        assert service.config.service_url == "https://ibmi.example.com:8080"

    def test_configure_logs_redacted_settings(self, service, caplog):
        """configure logs its settings at debug level with passwords masked."""
        caplog.set_level(logging.DEBUG, logger="ileusion.service")
        service.configure("https://ibmi.example.com:8080", "QUSER", "topsecret", False)

        assert "Connection settings:" in caplog.text
        assert "******" in caplog.text
        assert "topsecret" not in caplog.text

    def test_set_user_info_clears_http_user(self, service):
        """Setting the IBM i user drops any HTTP user override."""
        service.set_http_user_info("WEBUSER", "webpw", True)
        service.set_user_info("QUSER2", "pw2", True)

        assert service.config.auth_user == "QUSER2"
        assert service.config.auth_password == "pw2"


class TestSqlQuery:
    """Test queries and the held result table."""

    def test_query_body_and_endpoint(self, service, server, customers):
        """A SELECT posts the query to /sql and holds the table."""
        server.reply(customers)
        result = service.execute_sql_query(QUERY)

        assert result
        assert server.last_request.url.path == "/sql"
        assert server.last_body == {"query": QUERY}
        assert isinstance(result.value, Table)
        assert service.query_results is result.value
        assert len(result.value) == 3

    def test_quotes_in_sql_are_escaped(self, service, server):
        """SQL with quotes and backslashes still yields valid JSON."""
        sql = "SELECT * FROM T WHERE NAME = 'O\"Brien\\'"
        server.reply([])
        service.execute_sql_query(sql)

        assert server.last_body["query"] == sql

    def test_diagnostics_recorded(self, service, server, customers):
        """Status line and raw reply are kept after the call."""
        server.reply(customers)
        service.execute_sql_query(QUERY)

        assert service.last_http_status == "200 OK"
        assert json.loads(service.last_json_response) == customers
        assert service.last_http_response_data == service.last_json_response
        assert service.last_error == ""
        assert service.last_result.ok

    def test_failure_marker(self, service, server):
        """A failure reply fails with the remote message."""
        server.reply({"success": False, "message": "SQL0204 QCUSTCDT not found"})
        result = service.execute_sql_query(QUERY)

        assert result.kind == ErrorKind.REMOTE
        assert "SQL0204" in service.last_error
        assert service.query_results is None

    def test_empty_reply_clears_previous_table(self, service, server, customers):
        """An empty reply drops the table from the previous query."""
        server.reply(customers)
        assert service.execute_sql_query(QUERY)

        server.reply("")
        result = service.execute_sql_query(QUERY)

        assert not result
        assert "no data returned" in result.message.lower()
        assert service.query_results is None

    def test_transport_error(self, service, server):
        """Network failures are reported as transport errors."""
        server.reply(httpx.ConnectError("Connection refused"))
        result = service.execute_sql_query(QUERY)

        assert result.kind == ErrorKind.TRANSPORT
        assert "Connection refused" in service.last_error
        assert service.last_json_response.startswith(HTTP_ERROR_PREFIX)

    def test_unconvertible_reply(self, service, server):
        """A reply that is not a row array fails conversion."""
        server.reply({"rows": 3})
        result = service.execute_sql_query(QUERY)

        assert result.kind == ErrorKind.CONVERSION
        assert "Unable to convert results" in result.message

    def test_last_error_cleared_by_next_call(self, service, server, customers):
        """Each call starts with a clean last_error."""
        server.reply({"success": False})
        service.execute_sql_query(QUERY)
        assert service.last_error

        server.reply(customers)
        service.execute_sql_query(QUERY)
        assert service.last_error == ""

    def test_non_query(self, service, server):
        """Statements are sent with mode 2."""
        server.reply({"success": True})
        result = service.execute_sql_non_query("DELETE FROM QGPL.T")

        assert result
        assert server.last_body == {"mode": 2, "query": "DELETE FROM QGPL.T"}

    def test_non_query_failure(self, service, server):
        """A failed statement names the statement action."""
        server.reply({"success": False, "code": "SQL0204"})
        result = service.execute_sql_non_query("DELETE FROM QGPL.T")

        assert result.kind == ErrorKind.REMOTE
        assert service.last_error.startswith("SQL statement failed.")


class TestQueryOutputs:
    """Test query-then-format operations."""

    def test_to_list(self, service, server, customers):
        """Rows come back as lists with an optional header row."""
        server.reply(customers)
        rows = service.execute_sql_query_to_list(QUERY, first_row_column_names=True).value

        assert rows[0] == ["CUSNUM", "LSTNAM", "CITY", "BALDUE", "CDTDUE"]
        assert len(rows) == 4

    def test_to_csv_string(self, service, server, customers):
        """CSV has one line per row plus the header."""
        server.reply(customers)
        text = service.execute_sql_query_to_csv_string(QUERY).value

        lines = text.splitlines()
        assert len(lines) == 4
        assert all(len(line.split(",")) == 5 for line in lines)

    def test_to_json_string_round_trip(self, service, server, customers):
        """JSON output reloads into the same table shape."""
        server.reply(customers)
        text = service.execute_sql_query_to_json_string(QUERY).value

        table = Table.from_json(text)
        assert len(table) == 3
        assert table.column_names == ["CUSNUM", "LSTNAM", "CITY", "BALDUE", "CDTDUE"]

    def test_to_xml_string_uses_table_name(self, service, server, customers):
        """The table name names the rows and the held table."""
        server.reply(customers)
        text = service.execute_sql_query_to_xml_string(QUERY, "CUSTOMERS", write_schema=True).value

        assert "<NewDataSet" in text
        assert text.count("<CUSTOMERS>") == 3
        assert service.query_results.name == "CUSTOMERS"

    def test_query_failure_is_wrapped(self, service, server):
        """Format operations prefix the query failure."""
        server.reply({"success": False, "message": "bad"})
        result = service.execute_sql_query_to_csv_string(QUERY)

        assert result.kind == ErrorKind.REMOTE
        assert result.message.startswith("Query failed. Error: SQL query failed.")
        assert service.last_error == result.message

    def test_to_csv_file(self, service, server, customers, tmp_path):
        """The CSV file is written and its path returned."""
        path = tmp_path / "customers.csv"
        server.reply(customers)
        result = service.execute_sql_query_to_csv_file(QUERY, path)

        assert result.value == path
        assert len(path.read_text(encoding="utf-8").splitlines()) == 4

    def test_existing_file_not_replaced(self, service, server, customers, tmp_path):
        """An existing file is kept when replace is not set."""
        path = tmp_path / "customers.json"
        path.write_text("keep", encoding="utf-8")
        server.reply(customers)
        result = service.execute_sql_query_to_json_file(QUERY, path)

        assert not result
        assert "replace not selected" in service.last_error
        assert path.read_text(encoding="utf-8") == "keep"

    def test_xml_file_replace(self, service, server, customers, tmp_path):
        """replace overwrites an existing XML file."""
        path = tmp_path / "customers.xml"
        path.write_text("old", encoding="utf-8")
        server.reply(customers)

        assert service.execute_sql_query_to_xml_file(QUERY, path, replace=True)
        assert path.read_text(encoding="utf-8").count("<Table1>") == 3

    def test_xml_string_rejects_control_characters(self, service, server):
        """CHAR data with a control character fails XML export as a conversion error."""
        server.reply('[{"CUSNUM": 1, "LSTNAM": "Hen\\u0001ning"}]')
        result = service.execute_sql_query_to_xml_string(QUERY)

        assert result.kind == ErrorKind.CONVERSION
        assert result.value is None
        assert "Column 'LSTNAM'" in service.last_error
        assert service.query_results is not None

    def test_xml_file_not_written_on_bad_character(self, service, server, tmp_path):
        """No file is created when the XML cannot be built."""
        path = tmp_path / "customers.xml"
        server.reply('[{"LSTNAM": "a\\u001fb"}]')

        assert not service.execute_sql_query_to_xml_file(QUERY, path)
        assert not path.exists()


class TestHeldResults:
    """Test exporting the table kept from the last query."""

    def test_no_results_yet(self, service):
        """Exports fail before any query has run."""
        assert service.get_query_results().kind == ErrorKind.NOT_FOUND
        result = service.query_results_to_csv_string()
        assert not result
        assert "Run a query first" in service.last_error

    def test_exports_reuse_table(self, service, server, customers, tmp_path):
        """Held-table exports do not query again."""
        server.reply(customers)
        service.execute_sql_query(QUERY)

        assert service.get_query_results().value is service.query_results
        assert service.query_results_to_csv_string(separator=";").value.startswith('"CUSNUM";')
        assert json.loads(service.query_results_to_json_string().value) == customers
        assert "<DocumentElement>" in service.query_results_to_xml_string().value

        path = tmp_path / "held.csv"
        assert service.query_results_to_csv_file(path).value == path
        assert service.query_results_to_json_file(tmp_path / "held.json")
        assert service.query_results_to_xml_file(tmp_path / "held.xml", "ROWS")
        assert len(server.requests) == 1


class TestCommands:
    """Test CL, Qshell and generic API calls."""

    def test_cl_command(self, service, server):
        """CL commands post to /cl."""
        server.reply({"success": True})
        result = service.execute_command("DSPLIBL")

        assert result
        assert server.last_request.url.path == "/cl"
        assert server.last_body == {"command": "DSPLIBL"}

    def test_cl_failure_code(self, service, server):
        """The CPF code leads the failure message."""
        server.reply({"success": False, "code": "CPF2105"})
        result = service.execute_command("DLTDTAQ DTAQ(QGPL/X)")

        assert result.kind == ErrorKind.REMOTE
        assert service.last_error == "CPF2105 - Command call failed."

    def test_cl_reply_without_marker(self, service, server):
        """A CL reply without a success flag is malformed."""
        server.reply({"status": "ok"})
        assert service.execute_command("DSPLIBL").kind == ErrorKind.MALFORMED

    def test_http_500(self, service, server):
        """Server errors fail as transport errors and keep the status line."""
        server.reply("boom", status=500)
        result = service.execute_command("DSPLIBL")

        assert result.kind == ErrorKind.TRANSPORT
        assert service.last_http_status == "500 Internal Server Error"

    def test_qshell(self, service, server):
        """Qshell commands post to /qsh."""
        server.reply({"success": True, "output": ["a"]})
        assert service.execute_qshell_command("ls /tmp")
        assert server.last_request.url.path == "/qsh"

    def test_json_api_call(self, service, server):
        """The API name is lower-cased and the reply returned raw."""
        server.reply({"RTNCODE": "00"})
        result = service.execute_json_api_call('{"library":"QGPL","object":"PGM1","args":[]}', "CALL")

        assert result.value == '{"RTNCODE": "00"}'
        assert server.last_request.url.path == "/call"
        assert server.last_body["object"] == "PGM1"

    def test_json_api_call_dict_payload(self, service, server):
        """Dict payloads are sent as JSON."""
        service.execute_json_api_call({"list": []}, "/transaction")
        assert server.last_request.url.path == "/transaction"

    @pytest.mark.parametrize("payload,api", [("", "call"), ("{}", " ")])
    def test_json_api_call_requires_inputs(self, service, server, payload, api):
        """Payload and API name are both required."""
        assert service.execute_json_api_call(payload, api).kind == ErrorKind.CONFIGURATION
        assert server.requests == []

    def test_json_api_call_transport_error(self, service, server):
        """Timeouts fail the generic call."""
        server.reply(httpx.ReadTimeout("timed out"))
        assert service.execute_json_api_call("{}", "call").kind == ErrorKind.TRANSPORT


class TestDataQueues:
    """Test data queue send and pop."""

    def test_send_uppercases_names(self, service, server):
        """Queue and library names are upper-cased."""
        server.reply({"success": True})
        assert service.send_to_data_queue(" myq ", "qgpl", "hello")

        assert server.last_request.url.path == "/dq/send"
        assert server.last_body == {"library": "QGPL", "object": "MYQ", "data": "hello"}

    def test_receive_value(self, service, server):
        """The entry comes from the value field."""
        server.reply({"success": True, "value": "entry 1"})
        result = service.receive_from_data_queue("myq", "qgpl")

        assert result.value == "entry 1"
        assert server.last_request.url.path == "/dq/pop"
        assert server.last_body == {"library": "QGPL", "object": "MYQ"}

    def test_receive_null_value(self, service, server):
        """A null entry reads as an empty string."""
        server.reply({"success": True, "value": None})
        assert service.receive_from_data_queue("myq", "qgpl").value == ""

    def test_receive_missing_value(self, service, server):
        """A reply without a value field is malformed."""
        server.reply({"success": True})
        assert service.receive_from_data_queue("myq", "qgpl").kind == ErrorKind.MALFORMED

    def test_receive_failure(self, service, server):
        """A failed pop names the data queue action."""
        server.reply({"success": False, "code": "CPF9801"})
        result = service.receive_from_data_queue("myq", "qgpl")
        assert result.message == "CPF9801 - Data queue receive failed."


class TestJsonValues:
    """Test typed JSON value extraction."""

    DOC = '{"name":"QCUSTCDT","count":0,"ratio":"0.25","active":1,"rows":[{"ID":7}]}'

    def test_find_present_zero(self, service):
        """A present zero is found."""
        result = service.find_json_value(self.DOC, "count")
        assert result
        assert result.value == 0

    def test_find_missing(self, service):
        """A missing path is NOT_FOUND."""
        result = service.find_json_value(self.DOC, "missing")
        assert result.kind == ErrorKind.NOT_FOUND
        assert service.last_error == result.message

    def test_find_malformed(self, service):
        """Broken JSON is MALFORMED."""
        assert service.find_json_value("{", "name").kind == ErrorKind.MALFORMED

    def test_typed_values(self, service):
        """Each accessor converts to its type."""
        assert service.get_json_value_as_string(self.DOC, "name") == "QCUSTCDT"
        assert service.get_json_value_as_int(self.DOC, "rows[0].ID") == 7
        assert service.get_json_value_as_double(self.DOC, "ratio") == 0.25
        assert service.get_json_value_as_float(self.DOC, "ratio") == 0.25
        assert service.get_json_value_as_bool(self.DOC, "active") is True
        assert service.last_error == ""

    def test_missing_returns_zero_value(self, service):
        """Missing paths give the zero value and set last_error."""
        assert service.get_json_value_as_int(self.DOC, "missing") == 0
        assert "missing" in service.last_error
        assert service.get_json_value_as_string(self.DOC, "missing") == ""
        assert service.get_json_value_as_bool(self.DOC, "missing") is False

    def test_unconvertible_returns_zero_value(self, service):
        """Unconvertible values give the zero value and set last_error."""
        assert service.get_json_value_as_double(self.DOC, "name") == 0.0
        assert "cannot be converted" in service.last_error


class TestConversions:
    """Test JSON and table conversions."""

    def test_convert_json_to_table(self, service, customers):
        """JSON text converts to a named table."""
        result = service.convert_json_to_table(json.dumps(customers), "CUST")
        assert result.value.name == "CUST"
        assert len(result.value) == 3

    def test_convert_json_to_list(self, service, customers):
        """JSON text converts to rows with a header."""
        rows = service.convert_json_to_list(json.dumps(customers), True).value
        assert rows[0][0] == "CUSNUM"

    def test_convert_bad_json(self, service):
        """A non-array document fails conversion."""
        result = service.convert_json_to_table('{"a":1}')
        assert result.kind == ErrorKind.CONVERSION

    def test_convert_table_to_list(self, service, customers):
        """A table converts to row lists."""
        table = Table.from_records(customers)
        assert len(service.convert_table_to_list(table).value) == 3


class TestUtilities:
    """Test static helpers and lifecycle."""

    def test_base64(self):
        """Base64 helpers invert each other."""
        encoded = IleusionService.encode_string_to_base64("QUSER:secret")
        assert IleusionService.decode_string_from_base64(encoded) == "QUSER:secret"

    def test_encode_url(self):
        """URL encoding uses plus for spaces."""
        assert IleusionService.encode_url("a b&c") == "a+b%26c"

    def test_context_manager_closes_client(self, config, server):
        """Leaving the with block closes the HTTP client."""
        with IleusionService(config, transport=httpx.MockTransport(server.handler)) as svc:
            server.reply({"success": True})
            svc.execute_command("DSPLIBL")
            assert svc._http is not None
        assert svc._http is None
