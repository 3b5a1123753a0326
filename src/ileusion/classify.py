"""Response classification.

Decides whether raw response text from the service means success. The
failure marker always wins; an empty reply is only reported when no marker
was found.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from .jsonpath import TokenNotFoundError, as_string, get_json_value
from .models import ErrorKind
from .transport import HTTP_ERROR_PREFIX

logger = logging.getLogger(__name__)

FAILURE_MARKER = re.compile(r'"success"\s*:\s*false')
SUCCESS_MARKER = re.compile(r'"success"\s*:\s*true')

NO_DATA_MESSAGE = "most likely no data returned"


@dataclass(frozen=True)
class Verdict:
    """Outcome of classifying one response."""
    ok: bool
    kind: Optional[ErrorKind] = None
    message: str = ""


OK = Verdict(ok=True)


def has_failure_marker(text: str) -> bool:
    return bool(FAILURE_MARKER.search(text or ""))


def has_success_marker(text: str) -> bool:
    return bool(SUCCESS_MARKER.search(text or ""))


def is_transport_error(text: str) -> bool:
    return (text or "").startswith(HTTP_ERROR_PREFIX)


def _error_code(text: str) -> str:
    try:
        return as_string(get_json_value(text, "code"))
    except (ValueError, TypeError, TokenNotFoundError):
        return ""


def classify_command(text: str, action: str = "Command call") -> Verdict:
    """Classify a reply that must carry an explicit success flag."""
    if has_failure_marker(text):
        code = _error_code(text)
        message = f"{code} - {action} failed." if code else f"{action} failed."
        return Verdict(False, ErrorKind.REMOTE, message)
    if has_success_marker(text):
        return OK
    if is_transport_error(text):
        return Verdict(False, ErrorKind.TRANSPORT, f"{action} failed. {text}")
    if (text or "").strip() == "":
        return Verdict(False, ErrorKind.MALFORMED, f"{action} failed. {NO_DATA_MESSAGE.capitalize()}.")
    return Verdict(
        False,
        ErrorKind.MALFORMED,
        f"{action} failed. Invalid or unexpected response returned from web service.",
    )


def classify_sql_query(text: str) -> Verdict:
    """Classify a SELECT reply.

    Row data carries no success flag, so any non-empty reply without the
    failure marker counts as success, even one with neither marker.
    """
    return _classify_sql(text, "SQL query")


def classify_non_query(text: str) -> Verdict:
    return _classify_sql(text, "SQL statement")


def _classify_sql(text: str, action: str) -> Verdict:
    if has_failure_marker(text):
        message = f"{action} failed."
        detail = _remote_message(text)
        if detail:
            message += f" {detail}"
        return Verdict(False, ErrorKind.REMOTE, message)
    if is_transport_error(text):
        return Verdict(False, ErrorKind.TRANSPORT, f"{action} failed. Most likely an HTTP error occurred. {text}")
    if (text or "").strip() == "":
        return Verdict(False, ErrorKind.MALFORMED, f"{action} failed. {NO_DATA_MESSAGE.capitalize()}.")
    return OK


def _remote_message(text: str) -> str:
    """Pull ``message`` or ``code`` out of a failure reply, if present."""
    try:
        data = json.loads(text)
    except ValueError:
        return ""
    if not isinstance(data, dict):
        return ""
    for key in ("message", "code"):
        value = data.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            return str(value).strip()
    return ""
