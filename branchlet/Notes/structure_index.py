# structure_index.py
# Description: Parent/child adjacency map for the note tree, kept apart from note content
#
# Imports
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from .note_models import Note, ROOT_NOTE_ID
from .sync_errors import MissingContentError, StructureCycleError, StructureValidationError
#
########################################################################################################################
#
# Classes and Functions:

@dataclass
class StructureEntry:
    """Adjacency record for one note."""
    parent_id: Optional[str] = None
    child_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'parentId': self.parent_id, 'childIds': list(self.child_ids)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StructureEntry":
        parent_id = data.get('parentId')
        child_ids = data.get('childIds') or []
        if parent_id is not None and not isinstance(parent_id, str):
            raise StructureValidationError(f"parentId must be a string or null, got {parent_id!r}")
        if not isinstance(child_ids, list) or not all(isinstance(c, str) for c in child_ids):
            raise StructureValidationError(f"childIds must be a list of strings, got {child_ids!r}")
        return cls(parent_id=parent_id, child_ids=list(child_ids))


Structure = Dict[str, StructureEntry]


def structure_to_payload(structure: Structure) -> Dict[str, Dict[str, Any]]:
    """Wire form of a structure: ``{id: {"parentId": ..., "childIds": [...]}}``."""
    return {note_id: entry.to_dict() for note_id, entry in structure.items()}


def structure_from_payload(data: Any) -> Structure:
    """Parse the wire form of a structure. Shape errors raise StructureValidationError."""
    if not isinstance(data, Mapping):
        raise StructureValidationError("Structure must be a JSON object keyed by note id")
    structure: Structure = {}
    for note_id, entry in data.items():
        if isinstance(entry, StructureEntry):
            structure[note_id] = StructureEntry(entry.parent_id, list(entry.child_ids))
        elif isinstance(entry, dict):
            structure[note_id] = StructureEntry.from_dict(entry)
        else:
            raise StructureValidationError(f"Structure entry for {note_id} is not an object")
    return structure


def default_structure() -> Structure:
    """Single childless root; what a freshly reset repository holds."""
    return {ROOT_NOTE_ID: StructureEntry(parent_id=None, child_ids=[])}


def validate_structure(structure: Structure) -> None:
    """
    Check the forest invariants of a structure.

    Every child id must have an entry whose parent_id points back, every
    non-null parent_id must list the note among its children, no id may appear
    twice in child lists, and following parent_id must always reach a root.

    Raises:
        StructureValidationError: On the first violation found
    """
    seen_as_child = set()
    for note_id, entry in structure.items():
        for child_id in entry.child_ids:
            if child_id in seen_as_child:
                raise StructureValidationError(f"Note {child_id} is listed as a child more than once")
            seen_as_child.add(child_id)
            child = structure.get(child_id)
            if child is None:
                raise StructureValidationError(f"Note {note_id} lists unknown child {child_id}")
            if child.parent_id != note_id:
                raise StructureValidationError(
                    f"Note {child_id} is a child of {note_id} but records parent {child.parent_id}"
                )
        if entry.parent_id is not None:
            parent = structure.get(entry.parent_id)
            if parent is None:
                raise StructureValidationError(f"Note {note_id} has unknown parent {entry.parent_id}")
            if note_id not in parent.child_ids:
                raise StructureValidationError(
                    f"Note {note_id} records parent {entry.parent_id} which does not list it"
                )

    # Symmetry holds, so any cycle is a loop of parent_id links with no root.
    reaches_root = set()
    for start_id in structure:
        trail = []
        current: Optional[str] = start_id
        while current is not None and current not in reaches_root:
            if current in trail:
                raise StructureValidationError(f"Cycle detected through note {current}")
            trail.append(current)
            current = structure[current].parent_id
        reaches_root.update(trail)


class StructureIndex:
    """
    Maintains the normalised parent/child adjacency map of the note forest.

    The map is rebuilt wholesale from a nested tree (``initialize_structure``)
    or adopted from persisted data (``initialize_structure_from_data``), and
    kept current with ``add_note`` / ``delete_note`` / ``move_note`` as the
    tree is edited locally. ``rebuild_note_tree`` goes the other way, pairing
    the map with flat note content to produce a nested tree again.
    """

    def __init__(self):
        self._structure: Structure = {}

    def __contains__(self, note_id: str) -> bool:
        return note_id in self._structure

    def __len__(self) -> int:
        return len(self._structure)

    def initialize_structure(self, tree: List[Note]) -> Structure:
        """Rebuild the map from a nested tree, discarding any previous state."""
        self._structure = {}
        stack = [(note, None) for note in reversed(tree)]
        while stack:
            note, parent_id = stack.pop()
            self._structure[note.id] = StructureEntry(
                parent_id=parent_id,
                child_ids=[child.id for child in note.children],
            )
            stack.extend((child, note.id) for child in reversed(note.children))
        logger.debug(f"Structure initialised from tree with {len(self._structure)} notes")
        return self._structure

    def initialize_structure_from_data(self, structure: Union[Structure, Mapping[str, Any]],
                                       validate: bool = True) -> Structure:
        """
        Adopt a previously persisted structure.

        Args:
            structure: Wire-format dict or a mapping of StructureEntry
            validate: Check referential symmetry and acyclicity before adopting

        Raises:
            StructureValidationError: If validation is on and the data is not a forest
        """
        parsed = structure_from_payload(structure)
        if validate:
            validate_structure(parsed)
        self._structure = parsed
        return self._structure

    def get_structure(self) -> Structure:
        return self._structure

    def to_payload(self) -> Dict[str, Dict[str, Any]]:
        return structure_to_payload(self._structure)

    def add_note(self, note_id: str, parent_id: Optional[str]) -> None:
        """
        Register a new note under ``parent_id`` (None for a new top-level note).

        An unknown parent leaves the parent side unlinked; callers must pass a
        parent that is already indexed.
        """
        if parent_id is not None:
            parent = self._structure.get(parent_id)
            if parent is not None:
                parent.child_ids.append(note_id)
            else:
                logger.warning(f"add_note: parent {parent_id} not indexed; {note_id} left unlinked")
        self._structure[note_id] = StructureEntry(parent_id=parent_id, child_ids=[])

    def delete_note(self, note_id: str) -> List[str]:
        """
        Remove a note and its whole subtree.

        Returns:
            Ids removed from the index (empty if ``note_id`` was unknown)
        """
        entry = self._structure.get(note_id)
        if entry is None:
            return []

        if entry.parent_id is not None and entry.parent_id in self._structure:
            parent = self._structure[entry.parent_id]
            parent.child_ids = [child_id for child_id in parent.child_ids if child_id != note_id]

        removed = []
        worklist = [note_id]
        while worklist:
            current_id = worklist.pop()
            current = self._structure.pop(current_id, None)
            if current is None:
                continue
            removed.append(current_id)
            worklist.extend(current.child_ids)
        return removed

    def move_note(self, note_id: str, new_parent_id: Optional[str],
                  position: Optional[int] = None) -> None:
        """
        Re-parent a note, appending it to the new parent's children (or
        inserting at ``position``).

        Raises:
            StructureCycleError: If ``new_parent_id`` is the note or one of its descendants
        """
        entry = self._structure.get(note_id)
        if entry is None:
            return
        if new_parent_id is not None:
            if new_parent_id not in self._structure:
                logger.warning(f"move_note: target parent {new_parent_id} not indexed; {note_id} not moved")
                return
            if new_parent_id == note_id or new_parent_id in self.get_descendant_ids(note_id):
                raise StructureCycleError(f"Cannot move note {note_id} under its own descendant {new_parent_id}")

        if entry.parent_id is not None and entry.parent_id in self._structure:
            old_parent = self._structure[entry.parent_id]
            old_parent.child_ids = [child_id for child_id in old_parent.child_ids if child_id != note_id]

        entry.parent_id = new_parent_id

        if new_parent_id is not None:
            siblings = self._structure[new_parent_id].child_ids
            if position is None or position >= len(siblings):
                siblings.append(note_id)
            else:
                siblings.insert(max(0, position), note_id)

    def get_descendant_ids(self, note_id: str) -> List[str]:
        """All ids strictly below ``note_id``, pre-order."""
        entry = self._structure.get(note_id)
        if entry is None:
            return []
        descendants = []
        stack = list(reversed(entry.child_ids))
        while stack:
            current_id = stack.pop()
            descendants.append(current_id)
            current = self._structure.get(current_id)
            if current is not None:
                stack.extend(reversed(current.child_ids))
        return descendants

    def get_note_path(self, note_id: str) -> List[str]:
        """Ids from the top-level ancestor down to ``note_id``; empty if unknown."""
        if note_id not in self._structure:
            return []
        path: List[str] = []
        current: Optional[str] = note_id
        while current is not None and current not in path:
            path.insert(0, current)
            entry = self._structure.get(current)
            current = entry.parent_id if entry else None
        return path

    def root_ids(self) -> List[str]:
        return [note_id for note_id, entry in self._structure.items() if entry.parent_id is None]

    def rebuild_note_tree(self, contents: Mapping[str, Note]) -> List[Note]:
        """
        Rebuild the nested tree from the map plus flat note content.

        Args:
            contents: Note content keyed by id; children on these values are ignored

        Raises:
            MissingContentError: If the map references an id absent from ``contents``
        """
        roots: List[Note] = []
        # Pre-order walk; each stack item carries the list its note belongs in
        stack = [(root_id, roots) for root_id in reversed(self.root_ids())]
        while stack:
            note_id, siblings = stack.pop()
            content = contents.get(note_id)
            if content is None:
                raise MissingContentError(note_id)
            note = Note(
                id=note_id,
                title=content.title,
                content=content.content,
                expanded=content.expanded,
                synced=content.synced,
            )
            siblings.append(note)
            entry = self._structure.get(note_id) or StructureEntry()
            stack.extend((child_id, note.children) for child_id in reversed(entry.child_ids))
        return roots

#
# End of structure_index.py
########################################################################################################################
