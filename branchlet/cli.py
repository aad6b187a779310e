# branchlet/cli.py
# Description: Command line front end for the note tree and its GitHub sync
#
# Imports
import argparse
import asyncio
from typing import List, Optional, Sequence
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from . import __version__
from .config import (
    SyncConfig,
    get_cli_log_file_path,
    get_cli_setting,
    get_local_cache_path,
    load_sync_config,
    save_setting_to_cli_config,
)
from .Notes.auto_sync_manager import AutoSyncManager
from .Notes.local_cache import LocalTreeCache
from .Notes.note_models import Note
from .Notes.structure_index import StructureIndex
from .Notes.sync_engine import NotesSyncEngine, SyncResult
from .Notes.sync_errors import StructureCycleError
from .Notes.sync_service import NotesSyncService
from .Notes.tree_utils import iter_notes
from .Utils.github_api_client import GitHubAPIClient
from .Utils.logging_config import configure_logging
from .Utils.similarity import similarity
#
#######################################################################################################################
#
# Functions:

logger = logger.bind(module="cli")


def _remember_owner(owner: str) -> None:
    if get_cli_setting("github", "owner", "") != owner:
        save_setting_to_cli_config("github", "owner", owner)


def create_sync_service(config: Optional[SyncConfig] = None) -> NotesSyncService:
    """Wire the GitHub store, engine, shared structure index and local cache together."""
    config = config or load_sync_config()
    store = GitHubAPIClient(config)
    engine = NotesSyncEngine(store, config, structure_index=StructureIndex(),
                             on_owner_resolved=_remember_owner)
    return NotesSyncService(engine, cache=LocalTreeCache(get_local_cache_path()))


def render_tree(tree: List[Note], selected_id: Optional[str] = None, show_collapsed: bool = False) -> str:
    """
    Text outline of the tree, one note per line.

    ``*`` marks unsynced notes, ``>`` the selection, ``[+]`` a collapsed note
    whose children are hidden unless ``show_collapsed``.
    """
    lines = []
    stack = [(note, 0) for note in reversed(tree)]
    while stack:
        note, depth = stack.pop()
        marker = ">" if note.id == selected_id else " "
        dirty = "*" if not note.synced else " "
        folded = " [+]" if note.children and not note.expanded else ""
        lines.append(f"{marker}{dirty} {'  ' * depth}{note.title or '(untitled)'}{folded}  ({note.id})")
        if note.expanded or show_collapsed:
            stack.extend((child, depth + 1) for child in reversed(note.children))
    return "\n".join(lines)


def find_notes(tree: List[Note], query: str, limit: int = 10, threshold: float = 0.3) -> List[Note]:
    """Notes whose title best matches ``query``, most similar first."""
    needle = query.lower()
    scored = []
    for note in iter_notes(tree):
        title = note.title.lower()
        score = 1.0 if needle and needle in title else similarity(needle, title)
        if score >= threshold:
            scored.append((score, note))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [note for _, note in scored[:limit]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="branchlet - hierarchical notes synchronised with a GitHub repository",
        prog="branchlet"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level on the console")
    parser.add_argument("--token", help="GitHub token (defaults to $GITHUB_API_TOKEN or the config file)")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("pull", help="Replace the local tree with the remote one")
    commands.add_parser("push", help="Upload notes changed since the last sync")

    show = commands.add_parser("show", help="Print the local tree")
    show.add_argument("--all", action="store_true", help="Also show children of collapsed notes")
    show.add_argument("--note", help="Print the title and content of one note")

    find = commands.add_parser("find", help="Find notes by approximate title")
    find.add_argument("query")

    add = commands.add_parser("add", help="Create a note locally")
    add.add_argument("title")
    add.add_argument("--content", default="")
    add.add_argument("--parent", help="Parent note id (defaults to the selected note, else the root)")

    edit = commands.add_parser("edit", help="Change a note locally")
    edit.add_argument("note_id")
    edit.add_argument("--title")
    edit.add_argument("--content")
    fold = edit.add_mutually_exclusive_group()
    fold.add_argument("--expand", dest="expanded", action="store_const", const=True)
    fold.add_argument("--collapse", dest="expanded", action="store_const", const=False)

    move = commands.add_parser("move", help="Move a note under another parent locally")
    move.add_argument("note_id")
    target = move.add_mutually_exclusive_group(required=True)
    target.add_argument("--parent", help="New parent id")
    target.add_argument("--top-level", action="store_true", help="Make the note a top-level note")
    move.add_argument("--position", type=int, help="Index among the new siblings")

    select = commands.add_parser("select", help="Select a note as the default parent for 'add'")
    select.add_argument("note_id")

    delete = commands.add_parser("delete", help="Delete a note and its subtree, remotely and locally")
    delete.add_argument("note_id")
    delete.add_argument("--confirm", required=True, metavar="NOTE_ID", help="Repeat the note id to confirm")

    reset = commands.add_parser("reset", help="Delete every remote note and restore the default root")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")

    commands.add_parser("whoami", help="Resolve and store the GitHub user the token belongs to")

    watch = commands.add_parser("watch", help="Pull periodically until interrupted")
    watch.add_argument("--interval", type=int, help="Seconds between pulls (defaults to [sync] auto_sync_interval)")

    return parser


def _report(result: SyncResult) -> int:
    print(result.message)
    return 0 if result.succeeded else 1


async def _watch(service: NotesSyncService, interval: int) -> int:
    manager = AutoSyncManager(service, sync_interval=interval)
    manager.on_sync_completed = lambda result: print(result.message)
    manager.on_sync_error = lambda message: print(message)
    manager.on_sync_skipped = lambda reason: print(f"Skipped: {reason}")
    if not manager.start():
        print("Auto-sync interval is 0; set --interval or [sync] auto_sync_interval")
        return 1
    try:
        await manager.sync_task
    finally:
        manager.stop()
    return 0


async def run_command(args: argparse.Namespace, service: NotesSyncService) -> int:
    """Execute one parsed command against ``service``; returns the exit code."""
    command = args.command

    if command == "pull":
        return _report(await service.pull())
    if command == "push":
        return _report(await service.push())
    if command == "whoami":
        return _report(await service.refresh_identity())
    if command == "delete":
        return _report(await service.delete_note(args.note_id, args.confirm))
    if command == "reset":
        if not args.yes:
            print("Refusing to reset without --yes")
            return 1
        return _report(await service.reset())
    if command == "watch":
        interval = args.interval if args.interval is not None else service.config.auto_sync_interval
        return await _watch(service, interval)

    try:
        if command == "show":
            if args.note:
                note = service.select_note(args.note)
                print(f"# {note.title}\n\n{note.content}")
            else:
                print(render_tree(service.tree, service.selected_id, show_collapsed=args.all))
                print(f"\n{service.unsynced_count()} unsynced notes")
        elif command == "find":
            for note in find_notes(service.tree, args.query):
                print(f"{note.title}  ({note.id})")
        elif command == "add":
            note = service.add_note(args.title, args.content, parent_id=args.parent)
            print(f"Added note {note.id}")
        elif command == "edit":
            service.update_note(args.note_id, title=args.title, content=args.content, expanded=args.expanded)
            print(f"Updated note {args.note_id}")
        elif command == "move":
            new_parent = None if args.top_level else args.parent
            service.move_note(args.note_id, new_parent, args.position)
            print(f"Moved note {args.note_id}")
        elif command == "select":
            service.select_note(args.note_id)
            print(f"Selected note {args.note_id}")
    except KeyError as e:
        print(e.args[0])
        return 1
    except StructureCycleError as e:
        print(e.message)
        return 1
    return 0


async def _main(args: argparse.Namespace) -> int:
    service = create_sync_service(load_sync_config(token=args.token))
    try:
        return await run_command(args, service)
    finally:
        await service.close()


def main_cli_runner(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the branchlet command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = "DEBUG" if args.debug else get_cli_setting("logging", "log_level", "INFO")
    configure_logging(
        level=level,
        log_file=get_cli_log_file_path(),
        rotation=get_cli_setting("logging", "log_rotation", "10 MB"),
        retention=get_cli_setting("logging", "log_retention", 3),
    )
    logger.debug(f"branchlet {__version__} running '{args.command}'")

    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130

#
# End of cli.py
#######################################################################################################################
