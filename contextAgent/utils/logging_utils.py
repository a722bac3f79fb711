"""Logging utilities for contextAgent."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from contextAgent.config.settings import ObservabilitySettings

ROOT_LOGGER_NAME = "contextAgent"


def setup_logging(settings: Optional[ObservabilitySettings] = None, level: Optional[int] = None) -> logging.Logger:
    """Setup logging configuration for contextAgent.

    Args:
        settings: Observability settings (log directory and level)
        level: Explicit console level, overrides settings.log_level

    Returns:
        Configured logger instance
    """
    settings = settings or ObservabilitySettings()

    logs_dir = Path(settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"contextagent_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    if level is None:
        level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all child logs, handlers filter
    logger.propagate = False

    logger.handlers = []

    # File handler (detailed logs)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    # Console handler (user-friendly)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("contextAgent session started")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    return logger


def log_node_entry(logger: logging.Logger, node_name: str, state: Dict[str, Any]) -> None:
    """Log node entry with current state.

    Args:
        logger: Logger instance
        node_name: Name of the node being entered
        state: Current state dictionary
    """
    logger.info(f"\n{'#'*80}")
    logger.info(f"# ENTERING NODE: {node_name}")
    logger.info(f"{'#'*80}")
    logger.info("State snapshot:")
    logger.info(f"  - messages: {len(state.get('messages', []))}")
    logger.info(f"  - last_prompt_tokens: {state.get('last_prompt_tokens', 0):,}")
    logger.info(f"  - compact_count: {state.get('compact_count', 0)}")
    thread_id = state.get('thread_id') or 'N/A'
    logger.info(f"  - thread_id: {thread_id[:8]}...")


def log_node_exit(logger: logging.Logger, node_name: str, updates: Dict[str, Any]) -> None:
    """Log node exit with state updates.

    Args:
        logger: Logger instance
        node_name: Name of the node being exited
        updates: State updates returned by the node
    """
    logger.info(f"\n{'#'*80}")
    logger.info(f"# EXITING NODE: {node_name}")
    logger.info(f"{'#'*80}")
    logger.info("State updates:")
    for key, value in updates.items():
        if key == "messages":
            logger.info(f"  - messages: {len(value)} entries")
        elif key == "tool_declarations":
            logger.info(f"  - tool_declarations: {[d.get('name') for d in value]}")
        else:
            logger.info(f"  - {key}: {value}")
    logger.info(f"{'#'*80}\n")
