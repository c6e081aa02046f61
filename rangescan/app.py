"""
Main application wiring for rangescan.

This module loads configuration, builds the target stream, ledger, result
sinks and scheduler, maps interrupts onto a graceful stop, and runs the scan
on an asyncio event loop.
"""
import asyncio
import functools
import logging
import os
import signal
import sys
from typing import List, Optional

from .cli import apply_overrides, parse_args
from .configuration import ConfigError, load_config, save_config
from .discovery import get_local_network
from .ledger import ScanLedger
from .models import ScanSummary
from .parsing import InvalidTargetError, validate_tokens
from .probe import create_ssl_context, probe_target
from .reporting import GoodTargetWriter, ResultPrinter, fan_out, format_summary
from .scheduler import Probe, ScanScheduler
from .source import TargetStream
from .streams import open_byte_source

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InputUnavailableError(Exception):
    """Raised when the target input cannot be opened."""

    def __init__(self, path: str, error: OSError):
        self.path = path
        self.error = error
        super().__init__(f"Could not read targets from '{path}': {error}")


def _install_signal_handlers(scheduler: ScanScheduler) -> List[signal.Signals]:
    """Maps the first interrupt onto scheduler.stop(); a second one aborts."""
    loop = asyncio.get_running_loop()
    installed = []

    def _on_interrupt(sig: signal.Signals):
        logging.warning(f"Received {sig.name}; finishing in-flight probes. Interrupt again to abort.")
        _remove_signal_handlers(installed)
        scheduler.stop()

    for sig in INTERRUPT_SIGNALS:
        try:
            loop.add_signal_handler(sig, _on_interrupt, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not available on every platform's event loop (e.g. Windows).
            logging.debug(f"Could not install handler for {sig.name}.")
    return installed


def _remove_signal_handlers(installed: List[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    while installed:
        loop.remove_signal_handler(installed.pop())


def build_probe(settings) -> Probe:
    """Binds the configured identifiers, timeout and port into a one-argument probe."""
    return functools.partial(
        probe_target,
        test_identifiers=settings['test_identifiers'],
        timeout_ms=settings['timeout_ms'],
        port=settings['port'],
        ssl_context=create_ssl_context(settings['verify_tls']),
    )


async def run_scan(
    settings,
    tokens: List[str],
    input_path: Optional[str] = None,
    printer: Optional[ResultPrinter] = None,
    probe: Optional[Probe] = None,
) -> ScanSummary:
    """
    Runs one scan over ``tokens`` followed by the lines of ``input_path``.

    Raises InputUnavailableError if the input cannot be opened.
    """
    stream = TargetStream(high_water_mark=settings['high_water_mark'])
    stream.push_tokens(tokens)
    byte_source = None
    if input_path:
        try:
            byte_source = await open_byte_source(input_path, stream)
        except OSError as e:
            raise InputUnavailableError(input_path, e) from e
    else:
        stream.feed_eof()

    ledger = ScanLedger(settings['ledger_file'])
    ledger.load()

    sinks = [printer or ResultPrinter()]
    writer = GoodTargetWriter(settings['output_file']) if settings.get('output_file') else None
    if writer:
        sinks.append(writer)

    scheduler = ScanScheduler(
        stream,
        ledger,
        parallelism=settings['parallelism'],
        on_result=fan_out(sinks),
    )
    installed = _install_signal_handlers(scheduler)

    identifiers = ', '.join(settings['test_identifiers']) or '(TCP connect)'
    logging.info(f"Starting scan: parallelism {settings['parallelism']}, port {settings['port']}, "
                 f"testing {identifiers}, ledger {settings['ledger_file'] or '(none)'}")
    try:
        summary = await scheduler.start(probe or build_probe(settings))
    finally:
        _remove_signal_handlers(installed)
        stream.close()
        if byte_source is not None:
            await byte_source.wait_closed()
        ledger.close()
        if writer:
            writer.close()

    if stream.error is not None:
        logging.error(f"Input ended early because of a read error: {stream.error}")
    logging.info(f"Scan {scheduler.state.name.lower()}: {format_summary(summary)}")
    return summary


def _configure_logging(silent: bool, verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if silent else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s', stream=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the application. Returns the exit code."""
    args = parse_args(argv)
    _configure_logging(args.silent, args.verbose)

    try:
        settings = apply_overrides(load_config(args.config), args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.write_config:
        try:
            path = save_config(settings, args.write_config)
        except ConfigError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(f"Configuration written to '{path}'.")
        return 0

    try:
        tokens = validate_tokens(args.targets)
    except InvalidTargetError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.local:
        local_network = get_local_network()
        if local_network is None:
            print("ERROR: Could not determine the local network.", file=sys.stderr)
            return 1
        tokens.append(local_network)

    input_path = args.input
    if input_path is None and not tokens:
        input_path = '-'

    printer = ResultPrinter(silent=args.silent, verbose=args.verbose)
    try:
        asyncio.run(run_scan(settings, tokens, input_path, printer))
    except InputUnavailableError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except BrokenPipeError:
        # stdout reader exited early; the flush at interpreter exit must not raise again.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return 1
    except KeyboardInterrupt:
        print("Aborted.", file=sys.stderr)
        return 130
    return 0
