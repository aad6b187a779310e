"""
Atomic file writes for local state (the note cache).

Content goes to a temporary file beside the target, is fsynced, and is then
moved over the target with ``os.replace`` so readers see either the old file
or the new one, never a torn write.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union
from loguru import logger


def atomic_write_text(file_path: Union[str, Path], content: str, encoding: str = 'utf-8',
                      mode: int = 0o600) -> None:
    """
    Replace ``file_path`` with ``content`` in one step.

    Args:
        file_path: Target file; missing parent directories are created
        content: Text to write
        encoding: Text encoding
        mode: Permissions of the resulting file (private by default, notes are personal)

    Raises:
        OSError: If the temporary file cannot be written or moved into place
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp")
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, 'w', encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, file_path)
    except OSError as e:
        logger.error(f"Atomic write to {file_path} failed: {e}")
        temp_path.unlink(missing_ok=True)
        raise

    logger.debug(f"Atomically wrote {len(content)} chars to {file_path}")


def atomic_write_json(file_path: Union[str, Path], data: Any, indent: int = 2, mode: int = 0o600) -> None:
    """Serialise ``data`` as JSON and write it with ``atomic_write_text``."""
    atomic_write_text(file_path, json.dumps(data, indent=indent, ensure_ascii=False), mode=mode)
