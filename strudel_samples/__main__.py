"""
Command line entry point.

Usage:
    python -m strudel_samples [--verbose] [--cache-dir DIR] COMMAND ...
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .classifier import strip_index
from .context import SampleContext
from .on_demand import OnDemandLoader
from .server.config import ErrorCode, LoaderConfig
from .server.osc_client import superdirt_startup_code

logger = logging.getLogger("strudel_samples")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Configure root logging for the CLI."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strudel_samples",
        description="Download and cache Strudel samples for SuperDirt",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m strudel_samples load github:tidalcycles/dirt-samples
    python -m strudel_samples code pattern.strudel
    python -m strudel_samples classify gm_piano tr909bd casio
    python -m strudel_samples notify --timeout-ms 5000
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--cache-dir",
        type=str,
        default=None,
        help="Sample cache directory (default: ~/.local/share/strudel-samples)"
    )
    parser.add_argument(
        "--host", "-H",
        type=str,
        default=None,
        help="SuperDirt host (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="SuperDirt port (default: 57120)"
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write logs to this file"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    load = commands.add_parser("load", help="Load a sample source into the cache")
    load.add_argument("source", help="strudel.json URL or path, or github:user/repo/branch")
    load.add_argument("--base-url", default=None, help="Base for relative sample paths")
    load.add_argument("--notify", action="store_true", help="Tell SuperDirt to reload afterwards")

    code = commands.add_parser("code", help="Load every sound a pattern file uses")
    code.add_argument("file", help="Pattern source file ('-' for stdin)")

    classify = commands.add_parser("classify", help="Show where sound names come from")
    classify.add_argument("names", nargs="+", help="Sound names (bd:2 is accepted)")

    commands.add_parser("cached", help="List cached banks")

    notify = commands.add_parser("notify", help="Ask SuperDirt to reload the cache")
    notify.add_argument("--timeout-ms", type=int, default=0,
                        help="Wait this long for confirmation (default: don't wait)")

    commands.add_parser("defaults", help="Load the default sample packs")
    commands.add_parser("startup-code", help="Print SuperDirt startup code")

    return parser


def _config_from_args(args: argparse.Namespace) -> LoaderConfig:
    config = LoaderConfig.from_env()
    overrides = {}
    if args.cache_dir:
        overrides["cache_dir"] = args.cache_dir
    if args.host:
        overrides["superdirt_host"] = args.host
    if args.port:
        overrides["superdirt_port"] = args.port
    if args.verbose:
        overrides["verbose"] = True
    if args.log_file:
        overrides["log_file"] = args.log_file
    return replace(config, **overrides)


def _read_code(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def run(args: argparse.Namespace, context: SampleContext) -> int:
    """Execute a parsed command; returns the exit code."""
    command = args.command

    if command == "startup-code":
        print(superdirt_startup_code(context.config.cache_dir))
        return ErrorCode.OK

    if command == "cached":
        context.samples.init()
        for bank in context.samples.cached_banks():
            print(f"{bank}\t{len(context.samples.cached_files(bank))}")
        return ErrorCode.OK

    if command == "classify":
        loader = OnDemandLoader(context)
        for token in args.names:
            result = loader.classify(strip_index(token))
            line = f"{result.name}\t{result.kind.value}"
            if result.full_bank_name:
                line += f"\t{result.full_bank_name}\t{'valid' if result.is_valid else 'invalid'}"
            print(line)
        return ErrorCode.OK

    if command == "notify":
        context.notifier.connect()
        confirmed = context.notifier.notify_reload(context.config.cache_dir, args.timeout_ms)
        return ErrorCode.OK if confirmed else ErrorCode.NOT_CONFIRMED

    if command == "load":
        context.startup(connect=args.notify, load_drum_machines=False)
        result = context.samples.load_samples(args.source, args.base_url)
        for bank in result.bank_names:
            print(bank)
        if not result.loaded:
            return ErrorCode.NOTHING_LOADED
        if args.notify:
            context.notifier.notify_reload(result.bank_path)
        return ErrorCode.OK

    if command == "defaults":
        context.startup(connect=True, load_drum_machines=False)
        count = context.samples.load_default_samples(context.notifier)
        print(f"{count} banks available")
        return ErrorCode.OK if count else ErrorCode.NOTHING_LOADED

    if command == "code":
        context.startup(connect=True, load_drum_machines=True)
        loaded = OnDemandLoader(context).load_sounds_for_code(_read_code(args.file))
        for name in loaded:
            print(name)
        return ErrorCode.OK

    return ErrorCode.INVALID_ARGUMENT


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = _config_from_args(args)
    setup_logging(config.verbose, config.log_file)

    context = SampleContext.create(config)
    try:
        return run(args, context)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return ErrorCode.UNKNOWN
    finally:
        context.shutdown()


if __name__ == "__main__":
    sys.exit(main())
