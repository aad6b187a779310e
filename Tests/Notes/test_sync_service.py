"""
test_sync_service.py
Tests for the service layer: local edits, busy refusal, delete confirmation,
synced-flag bookkeeping, cache persistence and the status tracker.
"""
import asyncio

import pytest

from branchlet.Notes.local_cache import LocalTreeCache
from branchlet.Notes.note_models import ROOT_NOTE_ID
from branchlet.Notes.sync_engine import NotesSyncEngine, SyncOutcome
from branchlet.Notes.sync_errors import ErrorKind, RateLimitError, StructureCycleError
from branchlet.Notes.sync_service import NotesSyncService, SyncStatus, SyncStatusTracker
from branchlet.Notes.tree_utils import find_note, flatten_tree


@pytest.fixture
def service(sync_engine, sample_tree):
    return NotesSyncService(sync_engine, tree=sample_tree)


@pytest.fixture
def cache(isolated_temp_dir):
    return LocalTreeCache(isolated_temp_dir / "cache" / "notes.json")


class TestStartup:

    def test_default_tree_without_cache(self, sync_engine):
        service = NotesSyncService(sync_engine)

        assert [note.id for note in service.tree] == [ROOT_NOTE_ID]
        assert service.selected_id == ROOT_NOTE_ID
        assert ROOT_NOTE_ID in service.structure_index

    def test_index_is_initialised_from_tree(self, service):
        assert service.structure_index.get_descendant_ids(ROOT_NOTE_ID) == ["a", "a1", "b"]

    def test_restores_cached_tree(self, sync_engine, cache, sample_tree):
        sample_tree[0].children[1].synced = True
        cache.save(sample_tree, "a1")

        service = NotesSyncService(sync_engine, cache=cache)

        assert [note.id for note in flatten_tree(service.tree)] == ["root", "a", "a1", "b"]
        assert service.selected_id == "a1"
        assert service.unsynced_count() == 3

    def test_unreadable_cache_falls_back_to_default(self, sync_engine, cache):
        cache.path.parent.mkdir(parents=True)
        cache.path.write_text("{broken", encoding="utf-8")

        service = NotesSyncService(sync_engine, cache=cache)

        assert [note.id for note in service.tree] == [ROOT_NOTE_ID]


class TestLocalEdits:

    def test_add_note_under_selection(self, service):
        service.select_note("b")

        note = service.add_note("New", "text")

        assert note.synced is False
        assert find_note(service.tree, "b").children == [note]
        assert service.selected_id == note.id
        assert service.structure_index.get_structure()[note.id].parent_id == "b"

    def test_add_note_defaults_to_root(self, service):
        note = service.add_note("Top")

        assert service.tree[0].children[-1] is note

    def test_add_note_unknown_parent(self, service):
        with pytest.raises(KeyError):
            service.add_note("Orphan", parent_id="ghost")

    def test_add_notes_have_unique_ids(self, service):
        ids = {service.add_note(f"n{i}", parent_id=ROOT_NOTE_ID).id for i in range(20)}

        assert len(ids) == 20

    def test_update_marks_unsynced_only_on_change(self, service):
        note = find_note(service.tree, "a")
        note.synced = True

        service.update_note("a", title="A")
        assert note.synced is True

        service.update_note("a", content="edited")
        assert note.synced is False
        assert note.content == "edited"

    def test_toggle_expanded(self, service):
        note = service.toggle_expanded("b")

        assert note.expanded is True
        assert note.synced is False

    def test_move_note(self, service):
        service.move_note("a1", "b", position=0)

        assert find_note(service.tree, "a").children == []
        assert [n.id for n in find_note(service.tree, "b").children] == ["a1"]
        assert service.structure_index.get_structure()["a1"].parent_id == "b"

    def test_move_note_cycle_leaves_tree_untouched(self, service):
        with pytest.raises(StructureCycleError):
            service.move_note("a", "a1")

        assert [n.id for n in find_note(service.tree, "a").children] == ["a1"]
        assert service.structure_index.get_structure()["a"].parent_id == ROOT_NOTE_ID

    def test_select_unknown_note(self, service):
        with pytest.raises(KeyError):
            service.select_note("ghost")

    def test_edits_are_persisted(self, sync_engine, cache, sample_tree):
        service = NotesSyncService(sync_engine, cache=cache, tree=sample_tree)

        note = service.add_note("Cached", parent_id="a")

        reloaded = LocalTreeCache(cache.path).load()
        assert find_note(reloaded, note.id).title == "Cached"


class TestSyncOperations:

    @pytest.mark.asyncio
    async def test_push_marks_pushed_notes_synced(self, service, memory_store):
        result = await service.push()

        assert result.outcome == SyncOutcome.SUCCESS
        assert not service.has_unsynced_changes()
        assert service.status.status == SyncStatus.SUCCESS
        assert "root.json" in memory_store.files

    @pytest.mark.asyncio
    async def test_partial_push_marks_written_notes(self, service, memory_store):
        memory_store.fail("put_file:a1.json", RateLimitError(), RateLimitError(), RateLimitError())

        result = await service.push()

        assert not result.succeeded
        assert result.pushed_ids == ["root", "a"]
        assert [n.synced for n in flatten_tree(service.tree)] == [True, True, False, False]
        assert service.status.status == SyncStatus.ERROR

    @pytest.mark.asyncio
    async def test_pull_replaces_tree_and_clears_missing_selection(self, service):
        await service.push()
        service.add_note("Local only", parent_id=ROOT_NOTE_ID)

        result = await service.pull()

        assert result.succeeded
        assert service.selected_id is None
        assert [n.id for n in flatten_tree(service.tree)] == ["root", "a", "a1", "b"]

    @pytest.mark.asyncio
    async def test_failed_pull_keeps_local_tree(self, service, memory_store):
        memory_store.fail("list_entries", RuntimeError("boom"))
        before = [n.id for n in flatten_tree(service.tree)]

        result = await service.pull()

        assert result.error_kind == ErrorKind.UNKNOWN
        assert [n.id for n in flatten_tree(service.tree)] == before

    @pytest.mark.asyncio
    async def test_busy_service_refuses_new_operation(self, service, memory_store):
        service.status.begin("Push in progress...")

        result = await service.pull()

        assert result.error_kind == ErrorKind.BUSY
        assert memory_store.calls == []

    @pytest.mark.asyncio
    async def test_delete_requires_matching_confirmation(self, service, memory_store):
        result = await service.delete_note("a", "b")

        assert result.error_kind == ErrorKind.NOT_CONFIRMED
        assert find_note(service.tree, "a") is not None
        assert memory_store.calls == []

    @pytest.mark.asyncio
    async def test_delete_removes_subtree_and_selection(self, service, memory_store):
        await service.push()
        service.select_note("a1")

        result = await service.delete_note("a", "a")

        assert result.succeeded
        assert [n.id for n in flatten_tree(service.tree)] == ["root", "b"]
        assert service.selected_id is None
        assert "a.json" not in memory_store.files
        assert "a1.json" not in memory_store.files

    @pytest.mark.asyncio
    async def test_delete_root_is_refused(self, service):
        result = await service.delete_note(ROOT_NOTE_ID, ROOT_NOTE_ID)

        assert result.error_kind == ErrorKind.PROTECTED
        assert find_note(service.tree, ROOT_NOTE_ID) is not None

    @pytest.mark.asyncio
    async def test_reset_installs_default_tree(self, service, memory_store):
        await service.push()

        result = await service.reset()

        assert result.succeeded
        assert [n.id for n in service.tree] == [ROOT_NOTE_ID]
        assert service.tree[0].synced is True
        assert service.selected_id == ROOT_NOTE_ID
        assert sorted(memory_store.files) == ["root.json", "structure.json"]

    @pytest.mark.asyncio
    async def test_refresh_identity(self, service):
        result = await service.refresh_identity()

        assert result.succeeded
        assert "octocat" in result.message


class TestStatusTracker:

    def test_transitions_notify_listener(self):
        tracker = SyncStatusTracker()
        seen = []
        tracker.on_change = lambda status, message: seen.append(status)

        tracker.begin("Pull in progress...")
        assert tracker.is_busy
        tracker.succeed("done")

        assert seen == [SyncStatus.SYNCING, SyncStatus.SUCCESS]

    def test_without_loop_state_is_kept(self):
        tracker = SyncStatusTracker()

        tracker.fail("bad")

        assert tracker.status == SyncStatus.ERROR
        assert tracker.message == "bad"

    @pytest.mark.asyncio
    async def test_success_returns_to_idle(self):
        tracker = SyncStatusTracker(success_display_seconds=0.01, error_display_seconds=0.02)

        tracker.succeed("done")
        assert tracker.status == SyncStatus.SUCCESS
        await asyncio.sleep(0.05)

        assert tracker.status == SyncStatus.IDLE
        assert tracker.message == ""

    @pytest.mark.asyncio
    async def test_begin_cancels_pending_reset(self):
        tracker = SyncStatusTracker(success_display_seconds=0.01)

        tracker.succeed("done")
        tracker.begin("again")
        await asyncio.sleep(0.05)

        assert tracker.status == SyncStatus.SYNCING


def test_engine_and_service_share_index(memory_store, sync_config, fake_sleep, sample_tree):
    engine = NotesSyncEngine(memory_store, sync_config, sleep=fake_sleep)
    service = NotesSyncService(engine, tree=sample_tree)

    service.add_note("Shared", parent_id="b")

    assert service.structure_index is engine.structure_index
    assert len(engine.structure_index) == 5
