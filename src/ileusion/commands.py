"""Convenience operations built on CL commands and SQL statements.

Each function takes an ``IleusionService`` first and returns a ``Result``.
Object and library names are trimmed and upper-cased before use.
"""

import logging

from .models import ErrorKind, Result
from .service import IleusionService, operation

logger = logging.getLogger(__name__)


def _name(value: str) -> str:
    return value.strip().upper()


def _quote(value: str) -> str:
    """Double single quotes for use inside a quoted CL or SQL literal."""
    return value.replace("'", "''")


# ----------------------------------------------------------------------
# Data queues
# ----------------------------------------------------------------------

@operation
def create_data_queue(
    service: IleusionService,
    queue: str,
    library: str,
    record_length: int = 100,
) -> Result:
    """Create a FIFO data queue."""
    return service.execute_command(
        f"CRTDTAQ DTAQ({_name(library)}/{_name(queue)}) MAXLEN({record_length}) SEQ(*FIFO)"
    )


@operation
def delete_data_queue(service: IleusionService, queue: str, library: str) -> Result:
    return service.execute_command(f"DLTDTAQ DTAQ({_name(library)}/{_name(queue)})")


# ----------------------------------------------------------------------
# Objects and messages
# ----------------------------------------------------------------------

@operation
def check_object_exists(
    service: IleusionService,
    object_name: str,
    library: str,
    object_type: str,
    member: str = "*NONE",
    authority: str = "*NONE",
) -> Result:
    """Run CHKOBJ; the result fails if the object is missing or not authorized."""
    return service.execute_command(
        f"CHKOBJ OBJ({_name(library)}/{_name(object_name)}) OBJTYPE({_name(object_type)}) "
        f"MBR({_name(member)}) AUT({_name(authority)})"
    )


@operation
def send_message(service: IleusionService, message: str, to_user: str) -> Result:
    return service.execute_command(f"SNDMSG MSG('{_quote(message)}') TOUSR({_name(to_user)})")


@operation
def create_fixed_length_physical_file(
    service: IleusionService,
    file_name: str,
    library: str,
    record_length: int = 1024,
    description: str = "",
    authority: str = "LIBCRTAUT",
) -> Result:
    return service.execute_command(
        f"CRTPF FILE({_name(library)}/{_name(file_name)}) RCDLEN({record_length}) "
        f"TEXT('{_quote(description.strip())}') OPTION(*NOSRC *NOLIST *NOSECLVL) "
        f"MAXMBRS(1) SIZE(*NOMAX) AUT({_name(authority)})"
    )


# ----------------------------------------------------------------------
# Single-field SQL tables
# ----------------------------------------------------------------------

def _run_statement(service: IleusionService, sql: str, success: str, failure: str) -> Result:
    result = service.execute_sql_non_query(sql)
    if not result:
        return Result.failure(result.kind, f"{failure} {result.message}")
    logger.info(success)
    return Result.success(success)


@operation
def create_sql_table_fixed(
    service: IleusionService,
    table: str,
    library: str,
    record_length: int = 400,
) -> Result:
    """Create a table with a single ``RECORD CHAR(n)`` column.

    The success value is a status message.
    """
    table, library = _name(table), _name(library)
    return _run_statement(
        service,
        f"CREATE TABLE {library}/{table} (RECORD CHAR ({record_length}) NOT NULL WITH DEFAULT)",
        f"Table {table} was created in library {library}.",
        f"Errors occurred. It's possible table {table} in library {library} already exists.",
    )


@operation
def insert_sql_table_fixed(service: IleusionService, table: str, library: str, record: str) -> Result:
    table, library = _name(table), _name(library)
    return _run_statement(
        service,
        f"INSERT INTO {library}/{table} (RECORD) VALUES('{_quote(record)}')",
        f"Record inserted to Table {table} in library {library}.",
        f"Errors occurred. It's possible table {table} in library {library} does not exist.",
    )


@operation
def delete_sql_table(service: IleusionService, table: str, library: str) -> Result:
    table, library = _name(table), _name(library)
    return _run_statement(
        service,
        f"DROP TABLE {library}/{table}",
        f"Table {table} was deleted from library {library}.",
        f"Errors occurred. It's possible table {table} in library {library} does not exist.",
    )


@operation
def clear_sql_table(service: IleusionService, table: str, library: str) -> Result:
    table, library = _name(table), _name(library)
    return _run_statement(
        service,
        f"DELETE FROM {library}/{table}",
        f"Records were deleted from Table {table} in library {library}.",
        f"Errors occurred. It's possible table {table} in library {library} does not exist.",
    )


@operation
def check_sql_table_exists(service: IleusionService, table: str, library: str) -> Result:
    """Look the table up in QSYS2/SYSTABLES.

    The value is True or False. Files created with CRTPF are not in
    SYSTABLES and read as missing.
    """
    table, library = _name(table), _name(library)
    result = service.execute_sql_query_to_table(
        "SELECT COUNT(*) AS TABLECOUNT FROM QSYS2/SYSTABLES "
        f"WHERE TABLE_SCHEMA='{_quote(library)}' AND TABLE_NAME='{_quote(table)}'"
    )
    if not result:
        return result

    counts = result.value
    if len(counts) != 1 or counts.column("TABLECOUNT") is None:
        return Result.failure(ErrorKind.MALFORMED, "Error occurred. Only 1 count row expected.")

    exists = int(counts.value(0, "TABLECOUNT")) > 0
    logger.info(f"Table {library}/{table} {'exists' if exists else 'does not exist'}")
    return Result.success(exists)
