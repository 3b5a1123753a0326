"""ILEusion - Python client for the ILEusion IBM i microservice.

Runs SQL, CL and Qshell commands and data queue operations against an IBM i
host over HTTP(S), and turns query results into tables that can be exported
as CSV, XML, JSON or lists.

Usage:
    from ileusion import IleusionService, ServiceConfig

    svc = IleusionService(ServiceConfig.from_env())
    if svc.execute_command("SNDMSG MSG('Hello') TOUSR(QSYSOPR)"):
        print("sent")
    else:
        print(svc.last_error)

    from ileusion import commands
    commands.create_data_queue(svc, "MYDTAQ", "QGPL")
"""

from .config import ServiceConfig
from .models import ErrorKind, LastCall, Result, ServiceError
from .service import ConfigurationError, IleusionService
from .table import Column, Table
from .export import to_csv, to_json, to_xml, write_text_file
from .jsonpath import TokenNotFoundError, get_json_value, select_token
from .transport import HTTP_ERROR_PREFIX, HttpTransport, build_auth_header
from . import commands

__version__ = "1.0.0"

__all__ = [
    # Client
    "IleusionService",
    "ServiceConfig",
    "ConfigurationError",
    "commands",
    # Results
    "Result",
    "ServiceError",
    "ErrorKind",
    "LastCall",
    # Tables
    "Table",
    "Column",
    "to_csv",
    "to_json",
    "to_xml",
    "write_text_file",
    # JSON
    "get_json_value",
    "select_token",
    "TokenNotFoundError",
    # Transport
    "HttpTransport",
    "HTTP_ERROR_PREFIX",
    "build_auth_header",
]
