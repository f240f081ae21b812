"""
Command line entry point.

    speechbatch run batch.csv --provider openai --voice alloy --output-dir out/
    speechbatch validate --provider azure --region westeurope
    speechbatch voices --provider elevenlabs

Credentials are read from the environment (or a .env file); see settings.py.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from pydantic import ValidationError

from .batch.input_loader import load_batch_file
from .batch.scheduler import BatchScheduler, CancellationToken
from .core.config import BatchSettings, ProviderConfig
from .core.exceptions import SpeechBatchError
from .core.interfaces import AudioFormat, BatchState
from .logging_config import setup_logging
from .providers.factory import coerce_provider_type, provider_registry
from .utils.validators import ConfigurationValidator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def _add_provider_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--provider", required=True, help="Provider id, e.g. openai, google, azure")
    parser.add_argument("--voice", help="Voice id (provider default when omitted)")
    parser.add_argument("--region", help="Vendor region (Azure)")
    parser.add_argument("--format", dest="audio_format", choices=[f.value for f in AudioFormat],
                        help="Audio format of the artifacts")
    parser.add_argument("--output-dir", help="Directory receiving artifacts")
    parser.add_argument("--timeout", type=float, help="Per-call timeout in seconds (max 60)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="speechbatch", description="Batch text-to-speech over cloud providers")
    parser.add_argument("--log-level", help="Logging level (default from LOG_LEVEL)")
    parser.add_argument("--log-file", help="Also write logs to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Synthesize every row of a CSV or JSON batch file")
    run_parser.add_argument("batch_file", help="CSV or JSON file with SCRIPT and FILENAME columns")
    _add_provider_arguments(run_parser)
    run_parser.add_argument("--concurrency", type=int, help="Preferred worker ceiling")
    run_parser.add_argument("--deadline", type=float, help="Stop dispatching new items after N seconds")
    run_parser.add_argument("--overwrite", action="store_true", help="Replace existing artifacts")
    run_parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")

    validate_parser = subparsers.add_parser("validate", help="Check a provider configuration offline")
    _add_provider_arguments(validate_parser)
    validate_parser.add_argument("--connectivity", action="store_true",
                                 help="Also make one authenticated call to the provider")

    voices_parser = subparsers.add_parser("voices", help="List voices offered by a provider")
    _add_provider_arguments(voices_parser)

    return parser


def config_from_args(args: argparse.Namespace) -> ProviderConfig:
    provider_id = coerce_provider_type(args.provider)
    return ProviderConfig.from_settings(
        provider_id,
        voice=args.voice,
        region=args.region,
        audio_format=AudioFormat(args.audio_format) if args.audio_format else None,
        output_dir=args.output_dir,
        timeout=args.timeout
    )


def _install_interrupt_handler(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        # Windows event loops; KeyboardInterrupt still stops the process
        logger.debug("SIGINT handler not supported on this event loop")


async def run_command(args: argparse.Namespace) -> int:
    config = config_from_args(args)
    items = load_batch_file(args.batch_file)

    defaults = BatchSettings.from_settings()
    scheduler = BatchScheduler(batch_settings=defaults.model_copy(update={"overwrite": args.overwrite}))

    token = CancellationToken()
    _install_interrupt_handler(token)

    run = await scheduler.run(
        items, config, concurrency=args.concurrency, cancel_token=token, deadline_s=args.deadline
    )

    if args.json:
        print(json.dumps(run.summary(), indent=2, ensure_ascii=False))
    else:
        print(run.format_summary())

    if run.state is BatchState.COMPLETED:
        return EXIT_OK
    if run.state is BatchState.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_PARTIAL


async def validate_command(args: argparse.Namespace) -> int:
    config = config_from_args(args)
    report = ConfigurationValidator().validate(config.provider_id, config)

    for error in report.errors:
        print(f"ERROR   {error}")
    for warning in report.warnings:
        print(f"WARNING {warning}")
    if not report.is_valid:
        return EXIT_USAGE

    if args.connectivity:
        provider = provider_registry.create(config)
        try:
            reachable = await provider.test_connectivity()
        finally:
            await provider.cleanup()
        print(f"Connectivity: {'ok' if reachable else 'FAILED'}")
        if not reachable:
            return EXIT_PARTIAL

    print(f"Configuration for {config.provider_name} is valid")
    return EXIT_OK


async def voices_command(args: argparse.Namespace) -> int:
    config = config_from_args(args)
    provider = provider_registry.create(config)
    try:
        voices = await provider.list_voices()
    finally:
        await provider.cleanup()

    for voice in voices:
        details = ", ".join(part for part in (voice.language, voice.gender) if part)
        print(f"{voice.voice_id}\t{voice.name}\t{details}")
    return EXIT_OK


COMMANDS = {
    "run": run_command,
    "validate": validate_command,
    "voices": voices_command,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, log_file=args.log_file)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except SpeechBatchError as e:
        logger.error("%s", e)
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_USAGE
    except ValidationError as e:
        print(f"error: invalid option: {e}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
