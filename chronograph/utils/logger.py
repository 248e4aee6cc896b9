"""
Logging configuration using Loguru.

Services attach graph context with logger.bind(group_id=..., episode_uuid=...).
The console sink renders those keys after the message; the JSON file sink
keeps them as structured fields.
"""

import sys
from pathlib import Path

from loguru import logger

# Bound keys shown on the console, in this order
CONTEXT_KEYS = (
    "group_id",
    "episode_uuid",
    "entity_uuid",
    "entity_name",
    "edge_uuid",
    "operation",
    "attempt",
)

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level><dim>{extra[context]}</dim>"
)


def _render_context(record) -> None:
    extra = record["extra"]
    extra.setdefault("module", record["name"])
    pairs = [f"{key}={extra[key]}" for key in CONTEXT_KEYS if extra.get(key) is not None]
    extra["context"] = f" [{' '.join(pairs)}]" if pairs else ""


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = False,
    log_dir: str = "logs",
    file_rotation: str = "10 MB",
    file_retention: str = "7 days",
    compression: str = "zip",
    serialize: bool = True,
) -> None:
    """
    Configure Loguru sinks.

    Args:
        level: Minimum level for every sink
        log_to_file: Add a rotating file sink under log_dir
        log_dir: Directory for the file sink
        file_rotation: Loguru rotation condition
        file_retention: Loguru retention condition
        compression: Archive format for rotated files
        serialize: Write the file sink as JSON lines
    """
    logger.remove()
    logger.configure(patcher=_render_context)

    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "chronograph_{time:YYYY-MM-DD}.log",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[module]} - {message}{extra[context]}",
            rotation=file_rotation,
            retention=file_retention,
            compression=compression,
            serialize=serialize,
            enqueue=True,
        )


def get_logger(name: str):
    """Get a logger instance for a module."""
    return logger.bind(module=name)
