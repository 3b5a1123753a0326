"""Request documents sent to the ILEusion endpoints.

Requests are plain dataclasses encoded with ``json.dumps`` so quotes and
control characters in SQL or command text are always escaped.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, Dict

SQL_ENDPOINT = "/sql"
CL_ENDPOINT = "/cl"
QSH_ENDPOINT = "/qsh"
DQ_SEND_ENDPOINT = "/dq/send"
DQ_POP_ENDPOINT = "/dq/pop"

NON_QUERY_MODE = 2


def _object_name(value: str) -> str:
    return value.strip().upper()


@dataclass
class ServiceRequest:
    """Base class: subclasses set ``endpoint`` and define their fields."""

    endpoint = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class SqlQueryRequest(ServiceRequest):
    query: str
    endpoint = SQL_ENDPOINT


@dataclass
class SqlNonQueryRequest(ServiceRequest):
    query: str
    endpoint = SQL_ENDPOINT

    def to_dict(self) -> Dict[str, Any]:
        return {"mode": NON_QUERY_MODE, "query": self.query}


@dataclass
class ClCommandRequest(ServiceRequest):
    command: str
    endpoint = CL_ENDPOINT


@dataclass
class QshCommandRequest(ServiceRequest):
    command: str
    endpoint = QSH_ENDPOINT


@dataclass
class DataQueueSendRequest(ServiceRequest):
    library: str
    object: str
    data: str
    endpoint = DQ_SEND_ENDPOINT

    def __post_init__(self):
        self.library = _object_name(self.library)
        self.object = _object_name(self.object)


@dataclass
class DataQueuePopRequest(ServiceRequest):
    library: str
    object: str
    endpoint = DQ_POP_ENDPOINT

    def __post_init__(self):
        self.library = _object_name(self.library)
        self.object = _object_name(self.object)
