"""
test_note_models.py
Tests for the note record formats
"""
import pytest

from branchlet.Notes.note_models import Note, create_default_tree
from branchlet.Notes.sync_errors import RemoteFormatError
from branchlet.Notes.tree_utils import flatten_tree


def make_chain(depth):
    top = Note(id="n0", title="n0")
    tip = top
    for position in range(1, depth):
        child = Note(id=f"n{position}", title=f"n{position}", synced=position % 2 == 0)
        tip.children.append(child)
        tip = child
    return top


def test_nested_record_keeps_child_order(sample_tree):
    record = sample_tree[0].to_nested_record()

    assert [child["id"] for child in record["children"]] == ["a", "b"]
    assert record["children"][0]["children"][0]["id"] == "a1"
    assert "synced" not in record


def test_nested_record_with_synced_flags(sample_tree):
    sample_tree[0].synced = True

    record = sample_tree[0].to_nested_record(include_synced=True)
    restored = Note.from_nested_record(record, synced=None)

    assert [(n.id, n.synced) for n in flatten_tree([restored])] == [
        ("root", True), ("a", False), ("a1", False), ("b", False),
    ]


def test_from_nested_record_forces_synced_flag():
    record = {"id": "x", "synced": False, "children": [{"id": "y", "synced": False}]}

    note = Note.from_nested_record(record)

    assert note.synced and note.children[0].synced


@pytest.mark.parametrize("record", [
    {"id": "x", "children": {"id": "y"}},
    {"id": "x", "children": [{"title": "no id"}]},
    ["not", "a", "record"],
])
def test_from_nested_record_rejects_bad_shapes(record):
    with pytest.raises(RemoteFormatError):
        Note.from_nested_record(record)


def test_nested_records_deeper_than_recursion_limit():
    depth = 5000

    record = make_chain(depth).to_nested_record(include_synced=True)
    restored = Note.from_nested_record(record, synced=None)

    notes = flatten_tree([restored])
    assert [n.id for n in notes] == [f"n{i}" for i in range(depth)]
    assert [notes[-2].synced, notes[-1].synced] == [True, False]


def test_default_tree_is_a_single_root():
    tree = create_default_tree(synced=True)

    assert len(tree) == 1
    assert tree[0].children == []
    assert tree[0].synced
