"""Crash-safe writes for the shared project record."""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)


def atomic_write_text(file_path: Path, content: str) -> None:
    """
    Replace file_path with content in a single rename.

    Other tools reading the record at the same time see either the previous
    file or the new one, never a partial write.

    Raises:
        OSError: If the directory cannot be created or the write fails
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.name}.", suffix=".tmp", dir=str(file_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, file_path)
    except OSError as e:
        logger.error(f"Failed to write {file_path}: {e}")
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def atomic_write_model(file_path: Path, model: BaseModel, indent: int = 2) -> None:
    """Write a pydantic model as indented JSON with a trailing newline."""
    atomic_write_text(file_path, model.model_dump_json(indent=indent) + "\n")
