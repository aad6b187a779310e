# tree_utils.py
# Description: Canonical traversals over the nested note tree
#
"""
Every walk over the nested ``List[Note]`` forest goes through this module so
lookups, paths and copies behave the same for the engine, the service and the
CLI. Every walk uses an explicit stack, so none of them hits the recursion
limit on deep trees.
"""
#
# Imports
from typing import Callable, Iterator, List, Optional, Tuple
#
# Local Imports
from .note_models import Note
#
########################################################################################################################
#
# Functions:

def iter_notes(tree: List[Note]) -> Iterator[Note]:
    """Yield every note in pre-order (parent before children, siblings in order)."""
    stack = list(reversed(tree))
    while stack:
        note = stack.pop()
        yield note
        stack.extend(reversed(note.children))


def flatten_tree(tree: List[Note]) -> List[Note]:
    return list(iter_notes(tree))


def find_note(tree: List[Note], note_id: str) -> Optional[Note]:
    for note in iter_notes(tree):
        if note.id == note_id:
            return note
    return None


def find_parent(tree: List[Note], note_id: str) -> Tuple[Optional[Note], Optional[List[Note]]]:
    """
    Locate the sibling list holding ``note_id``.

    Returns:
        Tuple of (parent note or None for a top-level note, the list that
        contains the note). Both are None if the id is not in the tree.
    """
    for note in tree:
        if note.id == note_id:
            return None, tree
    for parent in iter_notes(tree):
        for child in parent.children:
            if child.id == note_id:
                return parent, parent.children
    return None, None


def note_path(tree: List[Note], note_id: str) -> Optional[List[Note]]:
    """Notes from a top-level note down to ``note_id`` inclusive, or None if absent."""
    stack: List[Tuple[Note, List[Note]]] = [(note, [note]) for note in reversed(tree)]
    while stack:
        note, path = stack.pop()
        if note.id == note_id:
            return path
        for child in reversed(note.children):
            stack.append((child, path + [child]))
    return None


def map_tree(tree: List[Note], transform: Callable[[Note], Note]) -> List[Note]:
    """
    Build a new tree by applying ``transform`` to a childless copy of every note.

    ``transform`` receives a copy whose ``children`` is empty and returns the
    note to place at that position; the mapped children are attached after.
    """
    mapped_tree: List[Note] = []
    stack: List[Tuple[Note, List[Note]]] = [(note, mapped_tree) for note in reversed(tree)]
    while stack:
        note, siblings = stack.pop()
        shallow = Note(
            id=note.id,
            title=note.title,
            content=note.content,
            expanded=note.expanded,
            synced=note.synced,
        )
        mapped = transform(shallow)
        mapped.children = []
        siblings.append(mapped)
        stack.extend((child, mapped.children) for child in reversed(note.children))
    return mapped_tree


def copy_tree(tree: List[Note]) -> List[Note]:
    return map_tree(tree, lambda note: note)


def remove_note(tree: List[Note], note_id: str) -> Optional[Note]:
    """Detach ``note_id`` (and its subtree) from the tree in place; return it or None."""
    _, siblings = find_parent(tree, note_id)
    if siblings is None:
        return None
    for index, note in enumerate(siblings):
        if note.id == note_id:
            return siblings.pop(index)
    return None


def subtree_ids(note: Note) -> List[str]:
    return [descendant.id for descendant in iter_notes([note])]


def mark_synced(tree: List[Note], note_ids, synced: bool = True) -> int:
    """Set the synced flag on the listed notes; return how many were found."""
    wanted = set(note_ids)
    updated = 0
    for note in iter_notes(tree):
        if note.id in wanted:
            note.synced = synced
            updated += 1
    return updated

#
# End of tree_utils.py
########################################################################################################################
