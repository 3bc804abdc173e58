"""Logging setup with repository/operation context for the command line."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class GitLogFormatter(logging.Formatter):
    """Formatter that prefixes records with repository and operation context."""

    def __init__(self, name: str, use_colors: bool = True):
        super().__init__()
        self.name = name
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        repo_context = ""
        if hasattr(record, "repo"):
            repo_context = f"[{record.repo}] "

        op_context = ""
        if hasattr(record, "operation"):
            op_context = f"[{record.operation}] "

        if self.use_colors:
            level_colors = {
                "DEBUG": "\033[36m",
                "INFO": "\033[32m",
                "WARNING": "\033[33m",
                "ERROR": "\033[31m",
                "CRITICAL": "\033[35m",
            }
            reset = "\033[0m"
            level_color = level_colors.get(record.levelname, "")
        else:
            level_color = ""
            reset = ""

        message = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.name}] {repo_context}{op_context}{record.getMessage()}"
        )
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that tags every record with the current repo and operation."""

    def __init__(self, logger: logging.Logger, name: str):
        super().__init__(logger, {})
        self.name = name
        self.current_repo: Optional[str] = None
        self.current_operation: Optional[str] = None

    def set_repo_context(self, repo: Optional[str] = None, operation: Optional[str] = None):
        if repo:
            self.current_repo = repo
        if operation is not None:
            self.current_operation = operation

    def clear_context(self):
        self.current_repo = None
        self.current_operation = None

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        if self.current_repo:
            extra["repo"] = self.current_repo
        if self.current_operation:
            extra["operation"] = self.current_operation
        kwargs["extra"] = extra
        return msg, kwargs


def setup_rich_logging(
    name: str = "gitchamber",
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    use_file: bool = False,
) -> ContextLogger:
    """
    Configure console (stderr) and optional file logging.

    Handlers are attached to the ``gitchamber`` package logger so library
    modules using ``logging.getLogger(__name__)`` share the same output.

    Args:
        name: Label shown in every line
        log_dir: Directory for ``<name>.log`` when use_file is set
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_file: Also write to a log file

    Returns:
        ContextLogger wrapping the package logger
    """
    logger = logging.getLogger("gitchamber")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.propagate = False

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    use_colors = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(GitLogFormatter(name, use_colors=use_colors))
    logger.addHandler(console_handler)

    if use_file:
        target_dir = Path(log_dir) if log_dir else Path(os.getcwd()) / "logs"
        target_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target_dir / f"{name}.log")
        file_handler.setFormatter(GitLogFormatter(name, use_colors=False))
        logger.addHandler(file_handler)

    return ContextLogger(logger, name)
