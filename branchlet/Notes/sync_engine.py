# sync_engine.py
# Description: Pull/push/delete/reset protocol between the local note tree and the remote store
#
# Imports
import asyncio
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from .note_models import (
    Note,
    NOTE_FILE_SUFFIX,
    ROOT_NOTE_ID,
    create_default_root,
    create_default_tree,
    note_file_name,
)
from .remote_store import RemoteEntry, RemoteFile, RemoteStore
from .retry_handler import RetryPolicy, with_retry
from .structure_index import StructureIndex, default_structure, structure_to_payload
from .sync_errors import (
    AuthError,
    ErrorKind,
    IdentityError,
    NetworkError,
    NotFoundError,
    ProtectedNoteError,
    RateLimitError,
    RemoteFormatError,
    describe_error,
)
from .tree_utils import iter_notes
from ..config import SyncConfig
from ..Metrics.metrics_logger import log_counter, log_histogram
#
########################################################################################################################
#
# Classes and Functions:

class SyncOperation(Enum):
    """Top-level operations the engine performs."""
    PULL = "pull"
    PUSH = "push"
    DELETE = "delete"
    RESET = "reset"
    IDENTITY = "identity"


class SyncOutcome(Enum):
    SUCCESS = "success"
    NOTHING_TO_SYNC = "nothing_to_sync"
    ERROR = "error"


@dataclass
class SyncResult:
    """Outcome of one engine operation. Failures are reported here, never raised."""
    operation: SyncOperation
    outcome: SyncOutcome
    message: str = ""
    error_kind: Optional[ErrorKind] = None
    error: Optional[BaseException] = None
    notes: Optional[List[Note]] = None
    pushed_ids: List[str] = field(default_factory=list)
    deleted_ids: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome != SyncOutcome.ERROR


def _encode_json(data: Any) -> bytes:
    return json.dumps(data, indent=2, ensure_ascii=False).encode('utf-8')


def _decode_json(remote_file: RemoteFile) -> Any:
    try:
        return json.loads(remote_file.content.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise RemoteFormatError(f"Invalid JSON in {remote_file.path}: {e}", path=remote_file.path) from e


class NotesSyncEngine:
    """
    Reconciles a local note tree with a flat remote store.

    The remote holds one structure file (``structure.json`` unless
    ``SyncConfig.structure_path`` says otherwise) plus one ``<id>.json``
    content record per note. Repositories written before the structure file
    existed hold self-contained nested notes instead; pull reads either
    layout, push always writes the structured one. The first push to a legacy
    repository rewrites every note as a flat record before writing the
    structure file.

    The engine never mutates the caller's tree. It keeps the shared
    ``StructureIndex`` in step with what it pulled or pushed, and remembers the
    remote revision of every file it has seen so updates can be conditional.
    """

    def __init__(self,
                 store: RemoteStore,
                 config: Optional[SyncConfig] = None,
                 structure_index: Optional[StructureIndex] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None,
                 on_owner_resolved: Optional[Callable[[str], None]] = None):
        """
        Initialize the sync engine.

        Args:
            store: Remote store to read and write
            config: Sync settings (owner, write delay, retries, cascade)
            structure_index: Index shared with the caller; a fresh one if omitted
            retry_policy: Overrides the policy derived from ``config``
            sleep: Awaitable sleep used between note writes
            on_owner_resolved: Called with the owner login once it is derived
        """
        self.store = store
        self.config = config or SyncConfig()
        self.structure_index = structure_index if structure_index is not None else StructureIndex()
        self._sleep = sleep or asyncio.sleep
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            sleep=self._sleep,
        )
        self.on_owner_resolved = on_owner_resolved
        self.structure_path = self.config.structure_path

        self.owner: Optional[str] = self.config.owner
        if self.owner:
            self.store.bind_owner(self.owner)

        # file name -> revision, as of the last listing or write
        self._revisions: Dict[str, Optional[str]] = {}
        self._last_structure_bytes: Optional[bytes] = None

    # --- helpers ---------------------------------------------------------------------------------------------------

    async def _call(self, operation_name: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        return await with_retry(operation, self.retry_policy, operation_name)

    async def _resolve_identity(self, force: bool = False) -> str:
        """Derive the owner from the credential unless it is already known."""
        if self.owner and not force:
            return self.owner
        try:
            owner = await self._call("fetch_identity", self.store.fetch_identity)
        except (AuthError, RateLimitError, IdentityError):
            raise
        except NetworkError as e:
            raise IdentityError(f"Could not fetch the authenticated user: {e}") from e
        if not owner:
            raise IdentityError("The credential did not resolve to an owner")

        self.owner = owner
        self.store.bind_owner(owner)
        logger.info(f"Sync identity resolved: {owner}")
        if self.on_owner_resolved:
            self.on_owner_resolved(owner)
        return owner

    async def _prepare(self) -> None:
        await self._resolve_identity()
        created = await self._call("ensure_container_exists", self.store.ensure_container_exists)
        if created:
            log_counter("sync_engine_repository_created")

    async def _list(self) -> List[RemoteEntry]:
        entries = await self._call("list_entries", self.store.list_entries)
        self._revisions = {entry.name: entry.revision for entry in entries if entry.is_file}
        return entries

    async def _read_json(self, path: str) -> Any:
        remote_file = await self._call(f"get_file:{path}", partial(self.store.get_file, path))
        return _decode_json(remote_file)

    async def _put(self, path: str, content: bytes, revision: Optional[str], message: str) -> Optional[str]:
        new_revision = await self._call(
            f"put_file:{path}", partial(self.store.put_file, path, content, revision, message)
        )
        self._revisions[path] = new_revision
        return new_revision

    async def _delete_if_present(self, path: str, message: str) -> bool:
        """Delete a listed file; absence counts as success. Returns whether a delete was issued."""
        if path not in self._revisions:
            logger.debug(f"{path} is not in the remote listing; nothing to delete")
            return False
        revision = self._revisions[path]
        try:
            await self._call(f"delete_file:{path}", partial(self.store.delete_file, path, revision, message))
        except NotFoundError:
            logger.debug(f"{path} was already gone on the remote")
        self._revisions.pop(path, None)
        return True

    def _success(self, operation: SyncOperation, start_time: float, message: str,
                 outcome: SyncOutcome = SyncOutcome.SUCCESS, **fields: Any) -> SyncResult:
        duration = time.time() - start_time
        log_histogram(f"sync_engine_{operation.value}_duration", duration, labels={"status": "success"})
        log_counter(f"sync_engine_{operation.value}_success", labels={"outcome": outcome.value})
        logger.info(message)
        return SyncResult(operation=operation, outcome=outcome, message=message, duration=duration, **fields)

    def _failure(self, operation: SyncOperation, start_time: float, error: BaseException,
                 action: str, **fields: Any) -> SyncResult:
        duration = time.time() - start_time
        kind, message = describe_error(error, action)
        log_histogram(f"sync_engine_{operation.value}_duration", duration, labels={"status": "error"})
        log_counter(f"sync_engine_{operation.value}_error", labels={
            "error_type": type(error).__name__,
            "error_kind": kind.value,
        })
        if kind == ErrorKind.UNKNOWN:
            logger.opt(exception=error).error(message)
        else:
            logger.error(message)
        return SyncResult(operation=operation, outcome=SyncOutcome.ERROR, message=message,
                          error_kind=kind, error=error, duration=duration, **fields)

    # --- identity --------------------------------------------------------------------------------------------------

    async def refresh_identity(self) -> SyncResult:
        """Re-derive the owner from the current credential."""
        start_time = time.time()
        log_counter("sync_engine_identity_attempt")
        try:
            owner = await self._resolve_identity(force=True)
        except Exception as e:
            return self._failure(SyncOperation.IDENTITY, start_time, e, "Identity lookup")
        return self._success(SyncOperation.IDENTITY, start_time, f"Signed in as {owner}")

    # --- pull ------------------------------------------------------------------------------------------------------

    async def pull(self) -> SyncResult:
        """
        Fetch the whole tree from the remote store.

        On success ``result.notes`` is the new tree with every note synced and
        the structure index mirrors it. On failure nothing local changes.
        """
        start_time = time.time()
        log_counter("sync_engine_pull_attempt")
        try:
            await self._prepare()
            entries = await self._list()
            note_entries = [
                entry for entry in entries
                if entry.is_file and entry.name.endswith(NOTE_FILE_SUFFIX) and entry.name != self.structure_path
            ]
            if self.structure_path in self._revisions:
                tree = await self._pull_structured(note_entries)
            else:
                tree = await self._pull_legacy(note_entries)
        except Exception as e:
            return self._failure(SyncOperation.PULL, start_time, e, "Pull")

        self.structure_index.initialize_structure(tree)
        self._last_structure_bytes = _encode_json(self.structure_index.to_payload())
        note_count = sum(1 for _ in iter_notes(tree))
        log_histogram("sync_engine_pull_notes", note_count)
        return self._success(SyncOperation.PULL, start_time, f"Pulled {note_count} notes", notes=tree)

    async def _pull_structured(self, note_entries: List[RemoteEntry]) -> List[Note]:
        structure_data = await self._read_json(self.structure_path)
        contents: Dict[str, Note] = {}
        for entry in note_entries:
            record = await self._read_json(entry.path)
            try:
                note = Note.from_content_record(record, synced=True)
            except RemoteFormatError as e:
                raise RemoteFormatError(f"{entry.path}: {e.message}", path=entry.path) from e
            contents[note.id] = note

        staging = StructureIndex()
        staging.initialize_structure_from_data(structure_data)
        logger.debug(f"Structured pull: {len(staging)} structure entries, {len(contents)} content files")
        return staging.rebuild_note_tree(contents)

    async def _pull_legacy(self, note_entries: List[RemoteEntry]) -> List[Note]:
        logger.info("No structure file on the remote; reading legacy nested notes")
        log_counter("sync_engine_legacy_pull")
        tree = []
        for entry in note_entries:
            record = await self._read_json(entry.path)
            try:
                tree.append(Note.from_nested_record(record, synced=True))
            except RemoteFormatError as e:
                raise RemoteFormatError(f"{entry.path}: {e.message}", path=entry.path) from e
        return tree

    # --- push ------------------------------------------------------------------------------------------------------

    async def push(self, tree: List[Note]) -> SyncResult:
        """
        Write the structure and every unsynced note to the remote store.

        Against a legacy repository every note is written, synced or not, and
        the structure goes last so an interrupted migration is retried in
        full by the next push.

        The tree is not modified; ``result.pushed_ids`` lists the notes written,
        including those written before a failure stopped the loop.
        """
        start_time = time.time()
        log_counter("sync_engine_push_attempt")
        pushed_ids: List[str] = []
        try:
            await self._prepare()
            try:
                await self._list()
            except RateLimitError:
                raise
            except NetworkError as e:
                logger.warning(f"Could not list remote files before push, continuing with known revisions: {e}")

            migrating = self._has_legacy_layout()
            if migrating:
                logger.info("Remote holds legacy nested notes; rewriting every note in the structured layout")
                log_counter("sync_engine_legacy_migration")
                pending = list(iter_notes(tree))
            else:
                await self._push_structure(tree)
                pending = [note for note in iter_notes(tree) if not note.synced]

            if not pending:
                return self._success(SyncOperation.PUSH, start_time, "Nothing to sync",
                                     outcome=SyncOutcome.NOTHING_TO_SYNC)

            for position, note in enumerate(pending):
                if position > 0 and self.config.write_delay > 0:
                    await self._sleep(self.config.write_delay)
                path = note_file_name(note.id)
                await self._put(path, _encode_json(note.to_content_record()),
                                self._revisions.get(path), f"Update note {note.title or note.id}")
                pushed_ids.append(note.id)

            if migrating:
                await self._push_structure(tree)
        except Exception as e:
            if pushed_ids:
                logger.warning(f"Push stopped after writing {len(pushed_ids)} notes")
            return self._failure(SyncOperation.PUSH, start_time, e, "Push", pushed_ids=pushed_ids)

        log_histogram("sync_engine_push_notes", len(pushed_ids))
        return self._success(SyncOperation.PUSH, start_time, f"Pushed {len(pushed_ids)} notes",
                             pushed_ids=pushed_ids)

    def _has_legacy_layout(self) -> bool:
        """True when the known listing has note files but no structure file."""
        if self.structure_path in self._revisions:
            return False
        return any(name.endswith(NOTE_FILE_SUFFIX) for name in self._revisions)

    async def _push_structure(self, tree: List[Note]) -> None:
        self.structure_index.initialize_structure(tree)
        payload = _encode_json(self.structure_index.to_payload())
        revision = self._revisions.get(self.structure_path)
        if payload == self._last_structure_bytes and revision is not None:
            logger.debug("Structure unchanged since last sync; not rewriting it")
            return
        await self._put(self.structure_path, payload, revision, "Update note structure")
        self._last_structure_bytes = payload

    # --- delete ----------------------------------------------------------------------------------------------------

    async def delete_note(self, note_id: str) -> SyncResult:
        """
        Remove a note's remote content file, and its descendants' with
        ``cascade_remote_delete``, then drop the subtree from the index.

        The remote structure file is left alone until the next push.
        """
        start_time = time.time()
        log_counter("sync_engine_delete_attempt")
        try:
            if note_id == ROOT_NOTE_ID:
                raise ProtectedNoteError(f"Refusing to delete the root note '{ROOT_NOTE_ID}'")

            target_ids = [note_id]
            if self.config.cascade_remote_delete:
                target_ids.extend(self.structure_index.get_descendant_ids(note_id))

            await self._prepare()
            await self._list()
            for target_id in target_ids:
                await self._delete_if_present(note_file_name(target_id), f"Delete note {target_id}")
        except Exception as e:
            return self._failure(SyncOperation.DELETE, start_time, e, "Delete")

        removed = self.structure_index.delete_note(note_id) or [note_id]
        return self._success(SyncOperation.DELETE, start_time, f"Deleted note {note_id}",
                             deleted_ids=removed)

    # --- reset -----------------------------------------------------------------------------------------------------

    async def reset_repository(self) -> SyncResult:
        """
        Wipe the remote store back to the default single-root state.

        On success ``result.notes`` is the default tree, already synced.
        """
        start_time = time.time()
        log_counter("sync_engine_reset_attempt")
        deleted: List[str] = []
        try:
            await self._prepare()
            entries = await self._list()
            for entry in entries:
                if not entry.is_file or entry.name == self.structure_path:
                    continue
                await self._delete_if_present(entry.name, f"Reset: delete {entry.name}")
                deleted.append(entry.name)

            structure_payload = _encode_json(structure_to_payload(default_structure()))
            await self._put(self.structure_path, structure_payload, None, "Reset note structure")
            root = create_default_root(synced=True)
            await self._put(note_file_name(root.id), _encode_json(root.to_content_record()), None,
                            "Reset root note")
        except Exception as e:
            return self._failure(SyncOperation.RESET, start_time, e, "Reset")

        self.structure_index.initialize_structure_from_data(default_structure(), validate=False)
        self._last_structure_bytes = structure_payload
        logger.debug(f"Reset removed {len(deleted)} remote files")
        return self._success(SyncOperation.RESET, start_time, "Repository reset to the default note",
                             notes=create_default_tree(synced=True))

#
# End of sync_engine.py
########################################################################################################################
