#!/usr/bin/env python3
"""
ILEusion command line client.

Usage:
    ileusion sql "SELECT * FROM QIWS.QCUSTCDT" --format csv
    ileusion cl "SNDMSG MSG('Hello') TOUSR(QSYSOPR)"
    ileusion dq-pop MYLIB MYDTAQ

Connection settings come from ILEUSION_* environment variables, a YAML
file given with --config, or the command line options below.
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import ServiceConfig
from .models import Result
from .service import IleusionService

logger = logging.getLogger(__name__)

FORMATS = ("csv", "json", "xml", "list")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ileusion", description="ILEusion IBM i client")
    parser.add_argument('--config', type=str, help='YAML file with connection settings')
    parser.add_argument('--url', type=str, help='ILEusion service URL')
    parser.add_argument('--user', type=str, help='IBM i user')
    parser.add_argument('--password', type=str, help='IBM i password')
    parser.add_argument('--timeout', type=int, help='HTTP timeout in milliseconds')
    parser.add_argument('--http-auth', action='store_true', help='Send HTTP basic auth credentials')
    parser.add_argument('--insecure', action='store_true', help='Accept invalid TLS certificates')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    sql = sub.add_parser('sql', help='Run a SELECT and print the results')
    sql.add_argument('query')
    sql.add_argument('--format', choices=FORMATS, default='csv')
    sql.add_argument('--output', type=str, help='Write results to this file')
    sql.add_argument('--replace', action='store_true', help='Replace an existing output file')
    sql.add_argument('--table-name', type=str, default='Table1', help='XML row element name')
    sql.add_argument('--schema', action='store_true', help='Include inline XML schema')

    execute = sub.add_parser('exec', help='Run an SQL statement that returns no rows')
    execute.add_argument('statement')

    cl = sub.add_parser('cl', help='Run a CL command')
    cl.add_argument('cl_command')

    qsh = sub.add_parser('qsh', help='Run a Qshell command')
    qsh.add_argument('qsh_command')

    send = sub.add_parser('dq-send', help='Send an entry to a data queue')
    send.add_argument('library')
    send.add_argument('queue')
    send.add_argument('data')

    pop = sub.add_parser('dq-pop', help='Receive an entry from a data queue')
    pop.add_argument('library')
    pop.add_argument('queue')

    call = sub.add_parser('call', help='POST a JSON document to any endpoint')
    call.add_argument('api')
    call.add_argument('payload', help='JSON request body')

    return parser


def load_config(args: argparse.Namespace) -> ServiceConfig:
    config = ServiceConfig.from_yaml(args.config) if args.config else ServiceConfig.from_env()
    if args.url:
        config.service_url = args.url
    if args.user:
        config.user = args.user
    if args.password:
        config.password = args.password
    if args.timeout:
        config.http_timeout = args.timeout
    if args.http_auth:
        config.use_http_credentials = True
    if args.insecure:
        config.allow_invalid_certificates = True
    return config


def run_sql(svc: IleusionService, args: argparse.Namespace) -> Result:
    if args.output:
        if args.format == 'csv':
            return svc.execute_sql_query_to_csv_file(args.query, args.output, replace=args.replace)
        if args.format == 'json':
            return svc.execute_sql_query_to_json_file(args.query, args.output, replace=args.replace)
        if args.format == 'xml':
            return svc.execute_sql_query_to_xml_file(
                args.query, args.output, replace=args.replace,
                table_name=args.table_name, write_schema=args.schema,
            )

    if args.format == 'csv':
        return svc.execute_sql_query_to_csv_string(args.query)
    if args.format == 'json':
        return svc.execute_sql_query_to_json_string(args.query)
    if args.format == 'xml':
        return svc.execute_sql_query_to_xml_string(args.query, args.table_name, args.schema)

    result = svc.execute_sql_query_to_list(args.query, first_row_column_names=True)
    if result:
        return Result.success("\n".join(json.dumps(row, default=str) for row in result.value))
    return result


def dispatch(svc: IleusionService, args: argparse.Namespace) -> Result:
    if args.command == 'sql':
        return run_sql(svc, args)
    if args.command == 'exec':
        return svc.execute_sql_non_query(args.statement)
    if args.command == 'cl':
        return svc.execute_command(args.cl_command)
    if args.command == 'qsh':
        return svc.execute_qshell_command(args.qsh_command)
    if args.command == 'dq-send':
        return svc.send_to_data_queue(args.queue, args.library, args.data)
    if args.command == 'dq-pop':
        return svc.receive_from_data_queue(args.queue, args.library)
    return svc.execute_json_api_call(args.payload, args.api)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ileusion command."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    logger.debug(f"Connection settings: {config.redacted()}")

    with IleusionService(config) as svc:
        result = dispatch(svc, args)

    if not result:
        print(f"Error ({result.kind.value}): {result.message}", file=sys.stderr)
        return 1

    if result.value is not None:
        print(result.value)
    return 0


if __name__ == "__main__":
    sys.exit(main())
