#!/usr/bin/env python3
"""
Task board — main entry point

Usage:
    python -m taskboard                         # taskboard.yaml or defaults
    python -m taskboard --config board.yaml
    python -m taskboard --log-level DEBUG

Requires the bot token in the environment variable named by
telegram_token_env (TASKBOARD_BOT_TOKEN by default).
"""

import argparse
import logging
import sys

from .bot import BoardBot
from .config import Config, ConfigError
from .store import CategoryStore, ContactStore, MemoryBackend, ReminderStore, TaskStore

logger = logging.getLogger("taskboard")


def build_bot(cfg: Config) -> BoardBot:
    backend = MemoryBackend()
    return BoardBot(
        cfg,
        tasks=TaskStore(backend, columns=cfg.column_set),
        categories=CategoryStore(backend, seed=cfg.seed_categories),
        contacts=ContactStore(backend),
        reminders=ReminderStore(backend),
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Event committee task board")
    parser.add_argument("--config", help="Path to taskboard.yaml (overrides TASKBOARD_CONFIG)")
    parser.add_argument("--log-level", help="Override the configured log level")
    args = parser.parse_args(argv)

    try:
        cfg = Config.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=(args.log_level or cfg.log_level).upper(),
        format="%(asctime)s [taskboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    bot = build_bot(cfg)
    try:
        bot.run()
    except ConfigError as e:
        logger.error(str(e))
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
