from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from plantops.core.config import ConfigFsPaths, ConfigManager
from plantops.core.errors import ConfigError
from plantops.core.events.registry import EventType
from plantops.core.logger import setup_logging
from plantops.core.shutdown import install_signal_handlers
from plantops.shell.console import ConsoleShell, build_runtime


async def _run(args: argparse.Namespace, fs: ConfigFsPaths, logger: logging.Logger) -> int:
    cfg = ConfigManager(fs=fs, logger=logger.getChild("config"), read_only=args.read_only_config).get()
    if not args.debug:
        logger.setLevel(cfg.logging.level.upper())
    rt = build_runtime(cfg, fs=fs, logger=logger)
    orch = rt.orchestrator

    stop = asyncio.Event()
    rt.bus.subscribe(EventType.SHUTDOWN_SIGNAL, lambda _ev: stop.set(), priority=90)
    hooked = install_signal_handlers(rt.bus, logger=logger.getChild("shutdown"))
    logger.info("Signals routed: %s", ",".join(hooked) or "none")

    await orch.start(fragment=args.fragment)
    if orch.error_state:
        print(f"Startup error: {orch.error_state}")
    try:
        await ConsoleShell(rt).run(stop=stop)
    finally:
        await orch.shutdown(reason="exit")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Plant operations console (session, navigation and module lifecycle)")
    ap.add_argument("--root", default=".", help="Directory holding config/, runtime/ and logs/.")
    ap.add_argument("--fragment", default=None, help="Initial location fragment, e.g. '#alerts'.")
    ap.add_argument("--debug", action="store_true", help="Log at DEBUG level.")
    ap.add_argument("--read-only-config", action="store_true", help="Never write config/app.json.")
    args = ap.parse_args(argv)

    fs = ConfigFsPaths(args.root)
    logger = setup_logging(fs.logs_dir, level=logging.DEBUG if args.debug else logging.INFO)
    try:
        return asyncio.run(_run(args, fs, logger))
    except ConfigError as e:
        logger.error("Config error: %s", e.context)
        print(e.user_message, file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
