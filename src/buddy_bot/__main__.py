"""CLI entry point for buddy-bot."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from buddy_bot.ai.tools.registry import ToolRegistry
from buddy_bot.app import BuddyBotApp
from buddy_bot.config import load_config
from buddy_bot.log import setup_logging
from buddy_bot.services.service_manager import ServiceManager


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="buddy-bot",
        description="Discord conversation bot with Claude AI integration",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_common_args(subparsers.add_parser("start", help="Start the bot"))
    _add_common_args(subparsers.add_parser("config-check", help="Validate configuration"))
    _add_common_args(subparsers.add_parser("model-info", help="Show AI model and tool settings"))

    args = parser.parse_args()

    if args.command is None:
        # Default to start
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "model-info":
        _model_info(args.config, args.env)
    elif args.command == "start":
        _run(args.config, args.env)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
        print(f"Configuration valid: {config_path}")
        print(f"  Model: {config.ai.model}")
        conv = config.conversation
        print(f"  Context: {conv.max_context_messages} messages / {conv.max_context_tokens} tokens")
        print(f"  Follow-ups: {conv.follow_up_message_count} within {conv.follow_up_timeout_seconds}s")
        print(f"  Streaming: {config.streaming.enabled} ({config.streaming.update_interval_ms}ms)")
        print(f"  Search: {config.services.web_search.primary_instance}")

        registry = ToolRegistry(ServiceManager(config.services))
        registry.discover_and_register()
        known = {t.name for t in registry.all_tools()}
        unknown = [name for name in config.tools.enabled if name not in known]
        if unknown:
            print(f"Unknown tools in tools.enabled: {', '.join(unknown)}", file=sys.stderr)
            sys.exit(1)
        print(f"  Tools: {', '.join(config.tools.enabled) or '(none)'}")
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _model_info(config_path: str, env_path: str) -> None:
    """Show AI model information."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print("AI Model Configuration")
    print("=" * 50)
    print(f"    Model   : {config.ai.model}")
    print(f"    Tokens  : {config.ai.max_tokens}")
    print(f"    Temp    : {config.ai.temperature}")
    print(f"    Tools   : {', '.join(config.tools.enabled) or '(none)'}")
    print(f"    Rounds  : {config.tools.max_rounds}")
    print(f"    Retries : {config.retry.max_retries}")
    print()


def _run(config_path: str, env_path: str) -> None:
    """Load config and start the application."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, json_output=config.log_json)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: _signal_handler())

        app = BuddyBotApp(config)
        await app.start()
        try:
            await stop_event.wait()
        finally:
            await app.stop()

    asyncio.run(_async_main())


if __name__ == "__main__":
    main()
