#!/usr/bin/env python3
"""
choco-gateway - Main entry point
"""
import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from utils.helpers import load_config, parse_param_pairs
from utils.settings import GatewaySettings, resolve_settings


def parse_cli_args(argv=None):
    """Parse runtime CLI arguments."""
    parser = argparse.ArgumentParser(description="choco-gateway")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config YAML file (optional)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Override HTTP listen host",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override HTTP listen port",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate and print resolved settings, then exit",
    )
    parser.add_argument(
        "--call",
        metavar="TOOL",
        default=None,
        help="Run a single tool, print its output and exit",
    )
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Tool parameter for --call (repeatable, values are JSON-decoded when possible)",
    )
    return parser.parse_args(argv)


def apply_cli_overrides(settings: GatewaySettings, args) -> GatewaySettings:
    """Apply --host/--port onto resolved settings."""
    values = settings.to_dict()
    if args.host:
        values["http_host"] = str(args.host)
    if args.port is not None:
        values["http_port"] = int(args.port)
    return GatewaySettings(**values)


def print_settings_summary(settings: GatewaySettings, args) -> None:
    print("✅ Config validation passed")
    print(f"config: {args.config}")
    for key, value in settings.to_dict().items():
        print(f"{key}: {value}")


# Configure logging
def setup_logging(config: dict):
    """Setup logging based on configuration"""
    log_config = config.get('logging', {})
    level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    handlers = [logging.StreamHandler(sys.stderr)]
    log_file = log_config.get('file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
        handlers=handlers,
    )

    # Reduce noise from libraries
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)


def setup_event_logger(config: dict):
    """Setup dedicated JSONL execution event logger if enabled."""
    events_conf = config.get('logging', {}).get('events', {})
    if not events_conf.get('enabled', False):
        return None

    logger = logging.getLogger('events')
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.handlers.clear()
    events_file = events_conf.get('file')
    if events_file:
        Path(events_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(events_file)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(handler)
    return logger


def build_dispatcher(settings: GatewaySettings, event_logger=None):
    """Wire runner, limiter, executor and dispatcher from settings."""
    from core.dispatcher import ToolDispatcher
    from core.executor import CommandExecutor
    from core.limiter import ConcurrencyLimiter
    from core.process_runner import ProcessRunner

    runner = ProcessRunner(
        settings.choco_bin,
        default_timeout_ms=settings.timeout_ms,
        max_buffer_bytes=settings.max_buffer_bytes,
        kill_grace_seconds=settings.kill_grace_seconds,
    )
    limiter = ConcurrencyLimiter(settings.max_concurrency)
    executor = CommandExecutor(runner, limiter, event_logger=event_logger)
    return ToolDispatcher(executor)


async def run_once(dispatcher, tool_name: str, params: dict) -> int:
    """Run one tool call; print output to stdout and errors to stderr."""
    from core.errors import GatewayError, ToolExecutionError

    try:
        response = await dispatcher.call(tool_name, params)
    except ToolExecutionError as e:
        print(str(e), file=sys.stderr)
        return 1
    except GatewayError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2
    print(response.text)
    if response.annotations:
        print(json.dumps(response.annotations, sort_keys=True), file=sys.stderr)
    return 0


async def serve(dispatcher, settings: GatewaySettings, logger) -> None:
    from aiohttp import web
    from core.http_app import build_app

    app = build_app(dispatcher)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.http_host, settings.http_port)
    await site.start()
    logger.info(
        "✅ choco-gateway listening on http://%s:%d (tools=%d)",
        settings.http_host,
        settings.http_port,
        len(dispatcher.list_tools()),
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_shutdown(sig_num: int):
        logger.info(f"Received signal {sig_num}, shutting down...")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, int(sig))
        except NotImplementedError:
            signal.signal(sig, lambda s, _f: _request_shutdown(int(s)))

    await shutdown_event.wait()
    logger.info("Shutting down...")
    await runner.cleanup()
    logger.info("✅ Shutdown complete")


async def main(argv=None):
    """Main application entry point"""
    args = parse_cli_args(argv)

    # Load configuration
    try:
        config = load_config(args.config) if args.config else {}
        settings = apply_cli_overrides(resolve_settings(config), args)
        params = parse_param_pairs(args.param)
    except Exception as e:
        print(f"❌ Failed to load configuration: {e}")
        sys.exit(1)

    if args.validate_only:
        print_settings_summary(settings, args)
        return

    setup_logging(config)
    event_logger = setup_event_logger(config)
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting choco-gateway... bin=%s max_concurrency=%d timeout_ms=%d",
        settings.choco_bin,
        settings.max_concurrency,
        settings.timeout_ms,
    )

    dispatcher = build_dispatcher(settings, event_logger=event_logger)
    if args.call:
        sys.exit(await run_once(dispatcher, args.call, params))

    await serve(dispatcher, settings, logger)


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Interrupted by user")


if __name__ == "__main__":
    cli()
