"""Serialize a Table to CSV, XML and JSON text or files."""

import json
import logging
import os
import re
import xml.etree.ElementTree as ET
from datetime import date, datetime
from pathlib import Path
from typing import Any, Union

from .table import DEFAULT_TABLE_NAME, Table

logger = logging.getLogger(__name__)

XS_NAMESPACE = "http://www.w3.org/2001/XMLSchema"
XML_DECLARATION = '<?xml version="1.0" standalone="yes"?>\n'

_NAME_START = re.compile(r"[A-Za-z_]")
_NAME_CHAR = re.compile(r"[A-Za-z0-9_.\-]")

# Anything outside the XML 1.0 Char production
_INVALID_XML_CHAR = re.compile(
    "[^\u0009\u000A\u000D\u0020-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]"
)

_XS_TYPES = {
    str: "xs:string",
    int: "xs:long",
    float: "xs:double",
    bool: "xs:boolean",
}


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime objects."""
    def default(self, obj):
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def format_value(value: Any) -> str:
    """Text form of a cell for CSV and XML output."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, cls=DateTimeEncoder)
    return str(value)


def xml_name(name: str) -> str:
    """Make a column name usable as an element name.

    Characters not allowed in XML names become ``_xHHHH_``, so ``COUNT(*)``
    is written as ``COUNT_x0028__x002A__x0029_``.
    """
    if not name:
        return "_"
    out = []
    for i, ch in enumerate(name):
        allowed = _NAME_START if i == 0 else _NAME_CHAR
        out.append(ch if allowed.fullmatch(ch) else f"_x{ord(ch):04X}_")
    return "".join(out)


def xml_text(value: Any, column: str) -> str:
    """Cell text for XML output; raises ``ValueError`` on characters XML cannot hold."""
    text = format_value(value)
    bad = _INVALID_XML_CHAR.search(text)
    if bad:
        raise ValueError(
            f"Column '{column}' contains character U+{ord(bad.group()):04X}, "
            f"which is not allowed in XML"
        )
    return text


def to_csv(table: Table, separator: str = ",", quote: str = '"') -> str:
    """Render the table as delimited text.

    Every field, header included, is wrapped in ``quote``. Embedded quote or
    separator characters are not escaped; pick characters that do not occur
    in the data.
    """
    lines = [separator.join(f"{quote}{name}{quote}" for name in table.column_names)]
    for row in table.rows:
        lines.append(separator.join(f"{quote}{format_value(v)}{quote}" for v in row))
    return "\n".join(lines) + "\n"


def _schema_element(table: Table, table_name: str) -> ET.Element:
    schema = ET.Element(f"{{{XS_NAMESPACE}}}schema", {"id": "NewDataSet"})
    dataset = ET.SubElement(schema, f"{{{XS_NAMESPACE}}}element", {"name": "NewDataSet"})
    complex_type = ET.SubElement(dataset, f"{{{XS_NAMESPACE}}}complexType")
    choice = ET.SubElement(
        complex_type,
        f"{{{XS_NAMESPACE}}}choice",
        {"minOccurs": "0", "maxOccurs": "unbounded"},
    )
    table_element = ET.SubElement(choice, f"{{{XS_NAMESPACE}}}element", {"name": xml_name(table_name)})
    row_type = ET.SubElement(table_element, f"{{{XS_NAMESPACE}}}complexType")
    sequence = ET.SubElement(row_type, f"{{{XS_NAMESPACE}}}sequence")
    for column in table.columns:
        ET.SubElement(
            sequence,
            f"{{{XS_NAMESPACE}}}element",
            {
                "name": xml_name(column.name),
                "type": _XS_TYPES.get(column.type, "xs:string"),
                "minOccurs": "0",
            },
        )
    return schema


def to_xml(table: Table, table_name: str = DEFAULT_TABLE_NAME, write_schema: bool = False) -> str:
    """Render the table as XML, one ``<table_name>`` element per row.

    Null cells are omitted. With ``write_schema`` the document root is
    ``NewDataSet`` and starts with an inline XSD describing the columns.
    Raises ``ValueError`` if a cell holds a character XML 1.0 does not allow.
    """
    table_name = (table_name or "").strip() or DEFAULT_TABLE_NAME

    ET.register_namespace("xs", XS_NAMESPACE)
    root = ET.Element("NewDataSet" if write_schema else "DocumentElement")
    if write_schema:
        root.append(_schema_element(table, table_name))

    for row in table.rows:
        row_element = ET.SubElement(root, xml_name(table_name))
        for column, value in zip(table.columns, row):
            if value is None:
                continue
            ET.SubElement(row_element, xml_name(column.name)).text = xml_text(value, column.name)

    ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


def to_json(table: Table, indent: Union[int, None] = None) -> str:
    """Render the table as a JSON array of row objects."""
    return json.dumps(table.records(), cls=DateTimeEncoder, indent=indent)


def write_text_file(path: Union[str, Path], text: str, replace: bool = False) -> Path:
    """Write ``text`` to ``path``.

    Raises ``FileExistsError`` without touching the file if it exists and
    ``replace`` is false.
    """
    path = Path(path)
    if path.exists():
        if not replace:
            raise FileExistsError(f"Output file {path} already exists and replace not selected.")
        os.remove(path)

    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)

    logger.debug(f"Wrote {len(text)} characters to {path}")
    return path
