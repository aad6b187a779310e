"""
test_structure_index.py
Unit tests for the parent/child adjacency map
"""
import pytest

from branchlet.Notes.note_models import Note
from branchlet.Notes.structure_index import (
    StructureEntry,
    StructureIndex,
    default_structure,
    structure_from_payload,
    structure_to_payload,
    validate_structure,
)
from branchlet.Notes.sync_errors import (
    MissingContentError,
    StructureCycleError,
    StructureValidationError,
)
from branchlet.Notes.tree_utils import flatten_tree


@pytest.fixture
def index(sample_tree):
    structure_index = StructureIndex()
    structure_index.initialize_structure(sample_tree)
    return structure_index


def contents_of(tree):
    return {note.id: note for note in flatten_tree(tree)}


class TestInitialize:

    def test_initialize_from_tree(self, index):
        structure = index.get_structure()

        assert structure["root"] == StructureEntry(parent_id=None, child_ids=["a", "b"])
        assert structure["a"] == StructureEntry(parent_id="root", child_ids=["a1"])
        assert structure["a1"] == StructureEntry(parent_id="a", child_ids=[])
        assert structure["b"] == StructureEntry(parent_id="root", child_ids=[])
        assert len(index) == 4

    def test_single_childless_root(self):
        index = StructureIndex()
        index.initialize_structure([Note(id="root")])

        assert index.to_payload() == {"root": {"parentId": None, "childIds": []}}

    def test_reinitialize_discards_previous_state(self, index):
        index.initialize_structure([Note(id="other")])

        assert "root" not in index
        assert index.root_ids() == ["other"]

    def test_initialize_from_wire_data(self):
        index = StructureIndex()
        index.initialize_structure_from_data({
            "root": {"parentId": None, "childIds": ["x"]},
            "x": {"parentId": "root", "childIds": []},
        })

        assert index.get_structure()["x"].parent_id == "root"

    def test_initialize_from_data_rejects_asymmetry(self):
        index = StructureIndex()

        with pytest.raises(StructureValidationError):
            index.initialize_structure_from_data({
                "root": {"parentId": None, "childIds": ["x"]},
                "x": {"parentId": None, "childIds": []},
            })
        assert len(index) == 0

    def test_initialize_from_data_without_validation(self):
        index = StructureIndex()
        index.initialize_structure_from_data({"x": {"parentId": "ghost", "childIds": []}}, validate=False)

        assert index.get_structure()["x"].parent_id == "ghost"

    def test_payload_round_trip(self, index):
        payload = index.to_payload()

        assert structure_to_payload(structure_from_payload(payload)) == payload

    @pytest.mark.parametrize("payload", [
        [],
        {"root": "not an object"},
        {"root": {"parentId": 7, "childIds": []}},
        {"root": {"parentId": None, "childIds": "a"}},
    ])
    def test_malformed_payload(self, payload):
        with pytest.raises(StructureValidationError):
            structure_from_payload(payload)


class TestValidation:

    def test_default_structure_is_valid(self):
        validate_structure(default_structure())

    def test_cycle_is_rejected(self):
        structure = {
            "a": StructureEntry(parent_id="b", child_ids=["b"]),
            "b": StructureEntry(parent_id="a", child_ids=["a"]),
        }
        with pytest.raises(StructureValidationError, match="Cycle"):
            validate_structure(structure)

    def test_duplicate_child_is_rejected(self):
        structure = {
            "p": StructureEntry(parent_id=None, child_ids=["c"]),
            "q": StructureEntry(parent_id=None, child_ids=["c"]),
            "c": StructureEntry(parent_id="p", child_ids=[]),
        }
        with pytest.raises(StructureValidationError):
            validate_structure(structure)

    def test_unknown_child_is_rejected(self):
        with pytest.raises(StructureValidationError, match="unknown child"):
            validate_structure({"p": StructureEntry(parent_id=None, child_ids=["missing"])})


class TestIncrementalMaintenance:

    def test_add_note_under_parent(self, index):
        index.add_note("new", "b")

        assert index.get_structure()["b"].child_ids == ["new"]
        assert index.get_structure()["new"] == StructureEntry(parent_id="b", child_ids=[])
        validate_structure(index.get_structure())

    def test_add_root(self, index):
        index.add_note("second-root", None)

        assert index.root_ids() == ["root", "second-root"]

    def test_add_under_unknown_parent_creates_entry_only(self, index):
        index.add_note("orphan", "ghost")

        assert index.get_structure()["orphan"].parent_id == "ghost"
        assert "ghost" not in index

    def test_delete_removes_subtree_and_parent_link(self, index):
        removed = index.delete_note("a")

        assert sorted(removed) == ["a", "a1"]
        assert "a" not in index and "a1" not in index
        assert index.get_structure()["root"].child_ids == ["b"]
        validate_structure(index.get_structure())

    def test_delete_unknown_is_noop(self, index):
        before = index.to_payload()

        assert index.delete_note("ghost") == []
        assert index.to_payload() == before

    def test_add_then_delete_restores_structure(self, index):
        before = index.to_payload()

        index.add_note("tmp", "a1")
        index.delete_note("tmp")

        assert index.to_payload() == before

    def test_move_note(self, index):
        index.move_note("a1", "b")

        assert index.get_structure()["a"].child_ids == []
        assert index.get_structure()["b"].child_ids == ["a1"]
        assert index.get_structure()["a1"].parent_id == "b"
        validate_structure(index.get_structure())

    def test_move_note_to_position(self, index):
        index.move_note("b", "root", position=0)

        assert index.get_structure()["root"].child_ids == ["b", "a"]

    def test_move_to_top_level(self, index):
        index.move_note("a", None)

        assert index.root_ids() == ["root", "a"]
        assert index.get_structure()["root"].child_ids == ["b"]

    def test_move_under_own_descendant_is_rejected(self, index):
        before = index.to_payload()

        with pytest.raises(StructureCycleError):
            index.move_note("a", "a1")
        with pytest.raises(StructureCycleError):
            index.move_note("a", "a")
        assert index.to_payload() == before

    def test_move_to_unknown_parent_is_noop(self, index):
        before = index.to_payload()

        index.move_note("a", "ghost")

        assert index.to_payload() == before

    def test_descendants_and_path(self, index):
        assert index.get_descendant_ids("root") == ["a", "a1", "b"]
        assert index.get_note_path("a1") == ["root", "a", "a1"]
        assert index.get_note_path("ghost") == []


class TestRebuild:

    def test_rebuild_round_trip(self, index, sample_tree):
        rebuilt = index.rebuild_note_tree(contents_of(sample_tree))

        def shape(tree):
            return [(n.id, n.title, n.content, n.expanded, [c.id for c in n.children]) for n in flatten_tree(tree)]

        assert shape(rebuilt) == shape(sample_tree)

    def test_rebuild_ignores_children_on_content(self, index, sample_tree):
        contents = contents_of(sample_tree)
        contents["b"] = Note(id="b", title="B", children=[Note(id="stray")])

        rebuilt = index.rebuild_note_tree(contents)

        assert rebuilt[0].children[1].children == []

    def test_rebuild_missing_content(self, index, sample_tree):
        contents = contents_of(sample_tree)
        del contents["a1"]

        with pytest.raises(MissingContentError) as exc_info:
            index.rebuild_note_tree(contents)
        assert exc_info.value.note_id == "a1"
        assert str(exc_info.value) == "Note content not found: a1"

    def test_rebuild_chain_deeper_than_recursion_limit(self):
        depth = 5000
        chain = [Note(id="n0", title="n0")]
        tip = chain[0]
        for position in range(1, depth):
            child = Note(id=f"n{position}", title=f"n{position}")
            tip.children.append(child)
            tip = child
        index = StructureIndex()
        index.initialize_structure(chain)

        rebuilt = index.rebuild_note_tree(contents_of(chain))

        assert [n.id for n in flatten_tree(rebuilt)] == [f"n{i}" for i in range(depth)]
