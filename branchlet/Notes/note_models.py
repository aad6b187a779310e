# note_models.py
# Description: Note tree data model and its JSON record formats
#
# Imports
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
#
# Local Imports
from .sync_errors import RemoteFormatError
#
########################################################################################################################
#
# Constants and Classes:

ROOT_NOTE_ID = "root"
ROOT_NOTE_TITLE = "My Notes"
ROOT_NOTE_CONTENT = (
    "Welcome to Branchlet.\n\n"
    "Add child notes under this one to start building your tree."
)

NOTE_FILE_SUFFIX = ".json"


@dataclass
class Note:
    """A titled text note owning an ordered list of child notes."""

    id: str
    title: str = ""
    content: str = ""
    expanded: bool = True
    synced: bool = False
    children: List["Note"] = field(default_factory=list)

    def to_content_record(self) -> Dict[str, Any]:
        """Flat per-note record written to ``<id>.json`` (no children, no synced flag)."""
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'expanded': self.expanded,
        }

    def to_nested_record(self, include_synced: bool = False) -> Dict[str, Any]:
        """Self-contained nested record (legacy remote layout and the local cache)."""
        top: Dict[str, Any] = {}
        stack: List[Tuple["Note", Optional[List[Dict[str, Any]]]]] = [(self, None)]
        while stack:
            note, siblings = stack.pop()
            record = note.to_content_record()
            record['children'] = []
            if include_synced:
                record['synced'] = note.synced
            if siblings is None:
                top = record
            else:
                siblings.append(record)
            stack.extend((child, record['children']) for child in reversed(note.children))
        return top

    @classmethod
    def from_content_record(cls, data: Any, synced: bool = True) -> "Note":
        """Build a childless note from a flat content record."""
        _require_record(data)
        return cls(
            id=str(data['id']),
            title=str(data.get('title', '')),
            content=str(data.get('content', '')),
            expanded=bool(data.get('expanded', True)),
            synced=synced,
        )

    @classmethod
    def from_nested_record(cls, data: Any, synced: Optional[bool] = True) -> "Note":
        """
        Build a note and its whole subtree from a nested record.

        Args:
            data: Parsed JSON object with optional ``children``
            synced: Value for every note's synced flag, or None to read the
                    ``synced`` key stored in the record (local cache)
        """
        top: Optional[Note] = None
        stack: List[Tuple[Any, Optional[List[Note]]]] = [(data, None)]
        while stack:
            record, siblings = stack.pop()
            _require_record(record)
            children = record.get('children') or []
            if not isinstance(children, list):
                raise RemoteFormatError(f"Note {record['id']} has a non-list 'children' field")
            note = cls.from_content_record(
                record,
                synced=bool(record.get('synced', False)) if synced is None else synced,
            )
            if siblings is None:
                top = note
            else:
                siblings.append(note)
            stack.extend((child, note.children) for child in reversed(children))
        return top


def _require_record(data: Any) -> None:
    if not isinstance(data, dict) or 'id' not in data:
        raise RemoteFormatError("Note record must be a JSON object with an 'id'")


def note_file_name(note_id: str) -> str:
    return f"{note_id}{NOTE_FILE_SUFFIX}"


def create_default_root(synced: bool = False) -> Note:
    """The canonical root note installed on first run and after a repository reset."""
    return Note(
        id=ROOT_NOTE_ID,
        title=ROOT_NOTE_TITLE,
        content=ROOT_NOTE_CONTENT,
        expanded=True,
        synced=synced,
    )


def create_default_tree(synced: bool = False) -> List[Note]:
    return [create_default_root(synced=synced)]

#
# End of note_models.py
########################################################################################################################
