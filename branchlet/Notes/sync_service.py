# sync_service.py
# Description: Service layer owning the local note tree and orchestrating sync operations
#
# Imports
import asyncio
import uuid
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, List, Optional
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from .local_cache import LocalTreeCache
from .note_models import Note, ROOT_NOTE_ID, create_default_tree
from .structure_index import StructureIndex
from .sync_engine import NotesSyncEngine, SyncOperation, SyncOutcome, SyncResult
from .sync_errors import ErrorKind, message_for
from .tree_utils import find_note, iter_notes, mark_synced, remove_note, subtree_ids
#
########################################################################################################################
#
# Classes:

class SyncStatus(Enum):
    """User-visible sync state."""
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class SyncStatusTracker:
    """
    idle -> syncing -> success | error -> idle.

    Success and error states fall back to idle after their display window,
    scheduled on the running event loop. Without a running loop the state
    stays put until the next ``begin``.
    """

    def __init__(self, success_display_seconds: float = 3.0, error_display_seconds: float = 5.0):
        self.success_display_seconds = success_display_seconds
        self.error_display_seconds = error_display_seconds
        self.status = SyncStatus.IDLE
        self.message = ""
        self._reset_handle: Optional[asyncio.TimerHandle] = None

        # Callback for UI updates
        self.on_change: Optional[Callable[[SyncStatus, str], None]] = None

    @property
    def is_busy(self) -> bool:
        return self.status == SyncStatus.SYNCING

    def _set(self, status: SyncStatus, message: str) -> None:
        self.status = status
        self.message = message
        if self.on_change:
            self.on_change(status, message)

    def _cancel_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    def _schedule_reset(self, delay: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reset_handle = loop.call_later(delay, self.reset)

    def begin(self, message: str) -> None:
        self._cancel_reset()
        self._set(SyncStatus.SYNCING, message)

    def succeed(self, message: str) -> None:
        self._cancel_reset()
        self._set(SyncStatus.SUCCESS, message)
        self._schedule_reset(self.success_display_seconds)

    def fail(self, message: str) -> None:
        self._cancel_reset()
        self._set(SyncStatus.ERROR, message)
        self._schedule_reset(self.error_display_seconds)

    def reset(self) -> None:
        self._reset_handle = None
        self._set(SyncStatus.IDLE, "")


class NotesSyncService:
    """High-level service for the note tree and its synchronisation."""

    def __init__(self, engine: NotesSyncEngine, cache: Optional[LocalTreeCache] = None,
                 tree: Optional[List[Note]] = None):
        """
        Initialize sync service.

        Args:
            engine: Engine performing the remote operations
            cache: Optional on-disk snapshot, loaded now and saved after every change
            tree: Starting tree; overrides the cache. The default single root otherwise.
        """
        self.engine = engine
        self.config = engine.config
        self.cache = cache
        self.selected_id: Optional[str] = None
        self.status = SyncStatusTracker(self.config.success_display_seconds, self.config.error_display_seconds)

        if tree is None:
            tree = self._load_cached_tree()
        if tree is None:
            tree = create_default_tree()
            self.selected_id = ROOT_NOTE_ID
        self.tree: List[Note] = tree
        self.structure_index.initialize_structure(self.tree)

    @property
    def structure_index(self) -> StructureIndex:
        return self.engine.structure_index

    def _load_cached_tree(self) -> Optional[List[Note]]:
        if self.cache is None:
            return None
        try:
            tree = self.cache.load()
        except ValueError as e:
            logger.error(f"Ignoring unreadable local note cache: {e}")
            return None
        if tree:
            self.selected_id = self.cache.selected_id
            logger.info(f"Restored {self.unsynced_count(tree)} unsynced notes from the local cache")
            return tree
        return None

    def _persist(self) -> None:
        """Save the tree to the local cache."""
        if self.cache is None:
            return
        try:
            self.cache.save(self.tree, self.selected_id)
        except OSError as e:
            logger.error(f"Error saving local note cache: {e}")

    def _require(self, note_id: str) -> Note:
        note = find_note(self.tree, note_id)
        if note is None:
            raise KeyError(f"Note not found: {note_id}")
        return note

    # --- sync operations -------------------------------------------------------------------------------------------

    async def _run(self, operation: SyncOperation, label: str,
                   call: Callable[[], Awaitable[SyncResult]]) -> SyncResult:
        if self.status.is_busy:
            logger.warning(f"{label} requested while another sync operation is running")
            return SyncResult(operation=operation, outcome=SyncOutcome.ERROR,
                              message=f"{label} skipped: {message_for(ErrorKind.BUSY)}",
                              error_kind=ErrorKind.BUSY)

        self.status.begin(f"{label} in progress...")
        result = await call()
        if result.succeeded:
            self.status.succeed(result.message)
        else:
            self.status.fail(result.message)
        return result

    async def pull(self) -> SyncResult:
        """Replace the local tree with the remote one and re-point the selection."""
        result = await self._run(SyncOperation.PULL, "Pull", self.engine.pull)
        if result.succeeded and result.notes is not None:
            self.tree = result.notes
            if self.selected_id is not None and find_note(self.tree, self.selected_id) is None:
                self.selected_id = None
            self._persist()
        return result

    async def push(self) -> SyncResult:
        """Push unsynced notes; every note the engine wrote is marked synced, even after a failure."""
        result = await self._run(SyncOperation.PUSH, "Push", partial(self.engine.push, self.tree))
        if result.pushed_ids:
            mark_synced(self.tree, result.pushed_ids)
            self._persist()
        return result

    async def delete_note(self, note_id: str, confirmation_id: str) -> SyncResult:
        """
        Delete a note and its subtree, remotely and locally.

        Args:
            note_id: Note to delete
            confirmation_id: Must equal ``note_id``; the user retypes the id to confirm
        """
        if confirmation_id != note_id:
            logger.info(f"Delete of {note_id} not confirmed")
            return SyncResult(operation=SyncOperation.DELETE, outcome=SyncOutcome.ERROR,
                              message=f"Delete cancelled: {message_for(ErrorKind.NOT_CONFIRMED)}",
                              error_kind=ErrorKind.NOT_CONFIRMED)

        result = await self._run(SyncOperation.DELETE, "Delete", partial(self.engine.delete_note, note_id))
        if result.succeeded:
            removed = remove_note(self.tree, note_id)
            removed_ids = set(subtree_ids(removed)) if removed else {note_id}
            if self.selected_id in removed_ids:
                self.selected_id = None
            self._persist()
        return result

    async def reset(self) -> SyncResult:
        """Reset the remote repository and install the default tree locally."""
        result = await self._run(SyncOperation.RESET, "Reset", self.engine.reset_repository)
        if result.succeeded and result.notes is not None:
            self.tree = result.notes
            self.selected_id = ROOT_NOTE_ID
            self._persist()
        return result

    async def refresh_identity(self) -> SyncResult:
        return await self._run(SyncOperation.IDENTITY, "Identity lookup", self.engine.refresh_identity)

    async def close(self) -> None:
        await self.engine.store.close()

    # --- local edits -----------------------------------------------------------------------------------------------

    def add_note(self, title: str, content: str = "", parent_id: Optional[str] = None) -> Note:
        """
        Create a note under ``parent_id``, else the selected note, else the root.

        The new note is unsynced and becomes the selection.
        """
        if parent_id is None:
            parent_id = self.selected_id
        if parent_id is None and find_note(self.tree, ROOT_NOTE_ID) is not None:
            parent_id = ROOT_NOTE_ID

        note = Note(id=str(uuid.uuid4()), title=title, content=content, expanded=True, synced=False)
        if parent_id is None:
            self.tree.append(note)
        else:
            parent = self._require(parent_id)
            parent.children.append(note)
        self.structure_index.add_note(note.id, parent_id)
        self.selected_id = note.id
        self._persist()
        logger.debug(f"Added note {note.id} under {parent_id}")
        return note

    def update_note(self, note_id: str, title: Optional[str] = None, content: Optional[str] = None,
                    expanded: Optional[bool] = None) -> Note:
        note = self._require(note_id)
        changed = False
        for attr, value in (('title', title), ('content', content), ('expanded', expanded)):
            if value is not None and getattr(note, attr) != value:
                setattr(note, attr, value)
                changed = True
        if changed:
            note.synced = False
            self._persist()
        return note

    def toggle_expanded(self, note_id: str) -> Note:
        note = self._require(note_id)
        return self.update_note(note_id, expanded=not note.expanded)

    def move_note(self, note_id: str, new_parent_id: Optional[str], position: Optional[int] = None) -> Note:
        """
        Re-parent a note locally (None makes it top-level).

        Raises:
            KeyError: If either note is missing
            StructureCycleError: If the target is the note itself or one of its descendants
        """
        note = self._require(note_id)
        if new_parent_id is not None:
            self._require(new_parent_id)
        self.structure_index.move_note(note_id, new_parent_id, position)

        remove_note(self.tree, note_id)
        siblings = self.tree if new_parent_id is None else self._require(new_parent_id).children
        if position is None or position >= len(siblings):
            siblings.append(note)
        else:
            siblings.insert(max(0, position), note)
        note.synced = False
        self._persist()
        return note

    def select_note(self, note_id: Optional[str]) -> Optional[Note]:
        note = self._require(note_id) if note_id is not None else None
        self.selected_id = note_id
        self._persist()
        return note

    @property
    def selected_note(self) -> Optional[Note]:
        if self.selected_id is None:
            return None
        return find_note(self.tree, self.selected_id)

    def unsynced_count(self, tree: Optional[List[Note]] = None) -> int:
        return sum(1 for note in iter_notes(self.tree if tree is None else tree) if not note.synced)

    def has_unsynced_changes(self) -> bool:
        return any(not note.synced for note in iter_notes(self.tree))

#
# End of sync_service.py
########################################################################################################################
