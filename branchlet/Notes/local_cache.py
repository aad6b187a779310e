# local_cache.py
# Description: On-disk snapshot of the local note tree between sessions
#
# Imports
import json
from pathlib import Path
from typing import List, Optional, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from .note_models import Note
from .sync_errors import RemoteFormatError
from ..Utils.atomic_file_ops import atomic_write_json
#
########################################################################################################################
#
# Classes:

CACHE_FORMAT_VERSION = 1


class LocalTreeCache:
    """
    Keeps the last known local tree, unsynced edits included, in a JSON file.

    The file holds ``{"version": 1, "selected_id": ..., "notes": [nested notes]}``
    where each note carries its ``synced`` flag so pending edits survive a
    restart.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.selected_id: Optional[str] = None

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[List[Note]]:
        """
        Read the cached tree.

        Returns:
            The tree, or None if there is no cache file yet

        Raises:
            ValueError: If the file is not a valid cache
        """
        if not self.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as e:
            raise ValueError(f"Local note cache {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get('notes'), list):
            raise ValueError(f"Local note cache {self.path} has an unexpected layout")
        if data.get('version') != CACHE_FORMAT_VERSION:
            raise ValueError(f"Unsupported local note cache version: {data.get('version')!r}")

        try:
            notes = [Note.from_nested_record(record, synced=None) for record in data['notes']]
        except RemoteFormatError as e:
            raise ValueError(f"Local note cache {self.path} holds an invalid note: {e}") from e

        self.selected_id = data.get('selected_id')
        logger.debug(f"Loaded {len(notes)} top-level notes from {self.path}")
        return notes

    def save(self, tree: List[Note], selected_id: Optional[str] = None) -> None:
        self.selected_id = selected_id
        atomic_write_json(self.path, {
            'version': CACHE_FORMAT_VERSION,
            'selected_id': selected_id,
            'notes': [note.to_nested_record(include_synced=True) for note in tree],
        })

#
# End of local_cache.py
########################################################################################################################
