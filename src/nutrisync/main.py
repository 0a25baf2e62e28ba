"""NutriSync - session wiring and the command line entry point."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .admin import remove_account
from .analysis import HttpFoodAnalyzer
from .clock import SystemClock
from .config import Config, setup_logging
from .errors import InvalidImportError, InvalidInputError
from .lock import SessionLock
from .models import SyncStatus
from .session import TrackerSession
from .sync import (
    HttpRemoteStore,
    LocalStore,
    SimulatedRemoteStore,
    SQLiteKeyValueStore,
    SyncCoordinator,
    SyncEngine,
)
from .sync.http_client import RemoteApiClient
from .sync.protocols import ClockProtocol

logger = logging.getLogger(__name__)

SIMULATED_REMOTE_DB = "simulated_remote.db"


# -- wiring --------------------------------------------------------------------


def build_local_store(config: Config) -> LocalStore:
    return LocalStore(SQLiteKeyValueStore(config.get_local_db_path()))


def _build_api_client(config: Config) -> RemoteApiClient:
    return RemoteApiClient(
        api_url=config.remote.api_url,
        token=config.remote.token,
        compress=config.remote.compress,
        timeout=config.sync.remote_timeout_seconds,
    )


def build_remote_store(config: Config, clock: ClockProtocol):
    """Remote store selected by ``config.remote.backend``."""
    backend = config.remote.backend
    if backend == "http":
        return HttpRemoteStore(_build_api_client(config), clock)
    if backend == "simulated":
        # Lives next to the local store so CLI runs share one "server"
        db_path = config.get_local_db_path().with_name(SIMULATED_REMOTE_DB)
        return SimulatedRemoteStore(
            SQLiteKeyValueStore(db_path),
            clock,
            read_latency=config.remote.read_latency_ms / 1000,
            write_latency=config.remote.write_latency_ms / 1000,
        )
    raise ValueError(f"Unknown remote backend: {backend!r}")


def build_session(config: Config, user_id: str) -> TrackerSession:
    clock = SystemClock()
    engine = SyncEngine(
        user_id,
        build_local_store(config),
        build_remote_store(config, clock),
        clock=clock,
        settings=config.sync,
        compaction=config.compaction,
    )
    analyzer = HttpFoodAnalyzer(_build_api_client(config)) if config.remote.backend == "http" else None
    return TrackerSession(engine, analyzer, SyncCoordinator(engine, config.sync))


# -- commands ------------------------------------------------------------------


def _ready_session(config: Config, user_id: str) -> TrackerSession:
    session = build_session(config, user_id)
    session.start()
    session.engine.wait_ready(config.sync.remote_timeout_seconds * 2)
    return session


def cmd_status(config: Config, args: argparse.Namespace) -> int:
    """Print the sync status of a user's session."""
    session = _ready_session(config, args.user)
    try:
        status = session.engine.get_status()
        dataset = session.dataset
        if dataset is not None:
            status["logs"] = len(dataset.logs)
            status["weight_samples"] = len(dataset.weight_history)
        print(json.dumps(status, indent=2))
    finally:
        session.close()
    return 0


def cmd_export(config: Config, args: argparse.Namespace) -> int:
    """Write a backup file for a user."""
    session = _ready_session(config, args.user)
    try:
        path = session.write_export(Path(args.output))
    except InvalidInputError as e:
        print(f"Error: {e}")
        return 1
    finally:
        session.close()
    print(f"Exported to {path}")
    return 0


def cmd_import(config: Config, args: argparse.Namespace) -> int:
    """Replace a user's data with a backup file."""
    source = Path(args.file)
    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    def confirm() -> bool:
        if args.yes:
            return True
        answer = input("This will overwrite the current data. Continue? [y/N] ")
        return answer.lower() == "y"

    session = _ready_session(config, args.user)
    try:
        if not session.import_document(source.read_text(encoding="utf-8"), confirm=confirm):
            print("Cancelled.")
            return 0
        synced = session.engine.flush(config.sync.remote_timeout_seconds * 2)
    except (OSError, InvalidImportError) as e:
        print(f"Error: {e}")
        return 1
    finally:
        session.close()

    print(f"Imported {source} ({'synced' if synced else 'saved locally'})")
    return 0


def cmd_resync(config: Config, args: argparse.Namespace) -> int:
    """Push the current data to the remote store."""
    session = _ready_session(config, args.user)
    try:
        if not session.resync():
            print("Nothing to sync.")
            return 0
        session.engine.flush(config.sync.remote_timeout_seconds * 2)
        status = session.status
    finally:
        session.close()

    print(f"Status: {status.value}")
    return 0 if status == SyncStatus.SYNCED else 1


def cmd_remove_account(config: Config, args: argparse.Namespace) -> int:
    """Delete a user's local and remote data."""
    if not args.yes:
        answer = input(f"Delete all data for {args.user}? [y/N] ")
        if answer.lower() != "y":
            print("Cancelled.")
            return 0

    clock = SystemClock()
    local = build_local_store(config)
    remote = build_remote_store(config, clock)
    try:
        removed = remove_account(args.user, local, remote)
    except InvalidInputError as e:
        print(f"Error: {e}")
        return 1
    finally:
        close = getattr(remote, "close", None)
        if close:
            close()

    print("Account removed." if removed else "Local data removed; remote store unreachable.")
    return 0 if removed else 1


COMMANDS = {
    "status": cmd_status,
    "export": cmd_export,
    "import": cmd_import,
    "resync": cmd_resync,
    "remove-account": cmd_remove_account,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nutrisync", description="NutriSync data tool")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to config.json (default: user config dir)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def add_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--user", required=True, help="User id")
        return sub

    add_command("status", "Show sync status")

    export_parser = add_command("export", "Export data to a backup file")
    export_parser.add_argument("--output", default=".", help="Output directory (default: .)")

    import_parser = add_command("import", "Import data from a backup file")
    import_parser.add_argument("file", help="Backup file to import")
    import_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")

    add_command("resync", "Push current data to the remote store")

    remove_parser = add_command("remove-account", "Delete local and remote data")
    remove_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = Config.load(Path(args.config) if args.config else None)
    setup_logging(args.debug or config.debug_mode)

    lock = SessionLock(args.user, config.get_local_db_path().parent)
    if not lock.acquire():
        holder = lock.holder_pid()
        owner = f" (pid {holder})" if holder else ""
        print(f"A NutriSync session for {args.user} is already running{owner}.")
        return 1

    try:
        return COMMANDS[args.command](config, args)
    finally:
        lock.release()


if __name__ == "__main__":
    sys.exit(main())
