"""Entry point for the AnyAPI client core.

Usage:
    python -m anyapi_client [options] COMMAND

Commands:
    status      Restore the saved session and show vault/session state
    unlock      Prompt for the vault password and establish a session
    logout      Forget the saved session
    health      Check backend health once
    watch       Monitor backend connectivity until interrupted

Options:
    --base-url URL      Backend URL (default: ANYAPI_BASE_URL or http://localhost:8080)
    --timeout SECS      Per-request timeout (default: ANYAPI_REQUEST_TIMEOUT or 30)
    --state-dir DIR     Where the session file lives (default: ~/.anyapi)
    --log-dir DIR       Also write logs to DIR
    --verbose           Show debug output on the console
"""

import argparse
import asyncio
import getpass
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .config import ClientConfig
from .core import ClientCore
from .events import Event
from .logging import get_logger, set_console_level, setup_logging
from .vault.unlock import PromptRequest

logger = get_logger("main")


def parse_args(argv: Optional[list[str]] = None) -> tuple[argparse.Namespace, ClientConfig]:
    parser = argparse.ArgumentParser(prog="anyapi-client", description="AnyAPI client core")
    parser.add_argument("--base-url", default="", help="Backend URL")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout (seconds)")
    parser.add_argument("--state-dir", default=None, help="Directory for the session file")
    parser.add_argument("--log-dir", default=None, help="Directory for log files")
    parser.add_argument("--verbose", action="store_true", help="Debug output")
    parser.add_argument("command", choices=["status", "unlock", "logout", "health", "watch"])

    args = parser.parse_args(argv)

    config = ClientConfig(
        base_url=args.base_url,
        request_timeout=args.timeout,
        state_dir=Path(args.state_dir) if args.state_dir else None,
    )
    return args, config


def _print_status(core: ClientCore) -> None:
    status = core.coordinator.status
    print(f"Vault state:   {core.coordinator.state.value}")
    if status is not None:
        print(f"Provider:      {status.provider.value}")
        print(f"Available:     {status.available}")
    session = core.session.status()
    print(f"Authenticated: {session['authenticated']}")
    if session["expires_at"]:
        print(f"Expires at:    {session['expires_at']}")
    for line in core.coordinator.recommendations():
        print(f"  - {line}")


def _terminal_prompt(request: PromptRequest) -> Optional[str]:
    if request.message:
        print(request.message, file=sys.stderr)
    try:
        password = getpass.getpass(f"Vault password (attempt {request.attempt}, empty to skip): ")
    except (EOFError, KeyboardInterrupt):
        return None
    return password or None


async def _prompt_in_thread(request: PromptRequest) -> Optional[str]:
    return await asyncio.to_thread(_terminal_prompt, request)


async def run(args: argparse.Namespace, config: ClientConfig) -> int:
    async with ClientCore(config, prompt=_prompt_in_thread) as core:
        if args.command == "status":
            _print_status(core)
            return 0

        if args.command == "logout":
            core.session.clear()
            print("Session cleared")
            return 0

        if args.command == "health":
            healthy = await core.monitor.check()
            print("Connected" if healthy else "Disconnected")
            return 0 if healthy else 1

        if args.command == "unlock":
            if core.coordinator.is_unlocked:
                print("Vault already unlocked")
                return 0
            unlocked = await core.unlock.ensure_access()
            if not unlocked:
                print("Continuing without the vault")
                return 1
            print("Vault unlocked")
            return 0

        # watch
        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown_event.set)

        core.notifier.subscribe(
            Event.CONNECTION_CHANGED,
            lambda event, payload: print("Connected" if payload["connected"] else "Disconnected"),
        )
        core.notifier.subscribe(
            Event.STATUS_CHANGED,
            lambda event, payload: print(f"Vault {payload['previous']} -> {payload['state']}"),
        )
        logger.info(f"Watching {config.base_url} every {config.health_interval:g}s")
        await core.monitor.run(shutdown_event)
        logger.info("Shutdown signal received")
        return 0


def main(argv: Optional[list[str]] = None) -> int:
    args, config = parse_args(argv)
    console_level = logging.DEBUG if args.verbose else logging.INFO
    if args.log_dir:
        setup_logging(args.log_dir, console_level=console_level)
    else:
        set_console_level(console_level)
    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
