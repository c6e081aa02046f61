"""
Command-line surface for rangescan.
"""
from __future__ import annotations
import argparse
from typing import Any, Dict, List, Optional

from . import __version__
from .configuration import validate_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rangescan",
        description="Probe IP addresses and ranges, recording progress so the scan can be resumed.",
        epilog="Example: rangescan -i ranges.txt -t example.com -p 128 -o good.txt",
    )
    parser.add_argument('targets', nargs='*', metavar='TARGET',
                        help="IP address, CIDR block (10.0.0.0/24) or dash range (10.0.0.1-10.0.0.9, 10.0.0.1-254)")
    parser.add_argument('-i', '--input', metavar='FILE',
                        help="read targets from FILE, one per line ('-' for standard input)")
    parser.add_argument('-o', '--output', metavar='FILE',
                        help="append targets that pass the probe to FILE")
    parser.add_argument('-r', '--ledger', metavar='FILE',
                        help="ledger used to resume the scan (default from config: rangescan.ledger)")
    parser.add_argument('--no-ledger', action='store_true',
                        help="do not read or write a ledger")
    parser.add_argument('-p', '--parallel', type=int, metavar='N',
                        help="number of probes in flight at once")
    parser.add_argument('-t', '--test', action='append', metavar='HOSTNAME', dest='test_identifiers',
                        help="hostname to test against every target (repeatable)")
    parser.add_argument('--timeout', type=int, metavar='MS',
                        help="probe timeout per test hostname, in milliseconds")
    parser.add_argument('--port', type=int, help="port to probe (default 443)")
    parser.add_argument('--insecure', action='store_true',
                        help="do not verify TLS certificates")
    parser.add_argument('--local', action='store_true',
                        help="add the local IPv4 network to the targets")
    parser.add_argument('-c', '--config', metavar='FILE',
                        help="YAML configuration file (default: rangescan.yaml if present)")
    parser.add_argument('--write-config', metavar='FILE',
                        help="write the effective configuration to FILE and exit")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-s', '--silent', action='store_true', help="only report warnings and errors")
    verbosity.add_argument('-v', '--verbose', action='store_true', help="debug logging and failure reasons")
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Returns a copy of ``config`` with command-line values applied on top."""
    settings = dict(config)
    overrides = {
        'parallelism': args.parallel,
        'timeout_ms': args.timeout,
        'port': args.port,
        'test_identifiers': args.test_identifiers,
        'ledger_file': args.ledger,
        'output_file': args.output,
    }
    settings.update({key: value for key, value in overrides.items() if value is not None})
    if args.no_ledger:
        settings['ledger_file'] = None
    if args.insecure:
        settings['verify_tls'] = False
    return validate_config(settings)
