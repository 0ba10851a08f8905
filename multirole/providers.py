"""Services that load banlists, card databases and scripts from repositories."""

import os
import re
import threading
from pathlib import Path

from .banlist import Banlist, parse_banlists
from .cardsdb import CardDatabase
from .constants import Level, ServiceType
from .observer import GitDiff, GitRepoObserver


def _full_path(path, filename) -> Path:
    return Path(os.path.normpath(Path(path) / Path(filename)))


class _FilteredObserver(GitRepoObserver):
    """Observer that only considers files whose name matches a pattern."""

    _service: ServiceType

    def __init__(self, log_handler, filename_pattern: str) -> None:
        self._log_handler = log_handler
        self._pattern = re.compile(filename_pattern)
        self._lock = threading.Lock()

    def _matches(self, filename) -> bool:
        return self._pattern.fullmatch(str(filename)) is not None

    def _info(self, text: str, *args) -> None:
        self._log_handler.log(self._service, Level.INFO, text, *args)

    def _error(self, text: str, *args) -> None:
        self._log_handler.log(self._service, Level.ERROR, text, *args)


class BanlistProvider(_FilteredObserver):
    """Keeps every banlist found in the observed repositories, by hash."""

    _service = ServiceType.BANLIST_PROVIDER

    def __init__(self, log_handler, filename_pattern: str) -> None:
        super().__init__(log_handler, filename_pattern)
        self._banlists: dict[int, Banlist] = {}

    def banlist_by_hash(self, hash_value: int) -> Banlist | None:
        with self._lock:
            return self._banlists.get(hash_value)

    def on_add(self, path, file_list) -> None:
        self._load_banlists(path, file_list)

    def on_diff(self, path, diff: GitDiff) -> None:
        self._load_banlists(path, diff.added)

    def _load_banlists(self, path, file_list) -> None:
        loaded: dict[int, Banlist] = {}
        for filename in file_list:
            if not self._matches(filename):
                continue
            full_path = _full_path(path, filename)
            self._info("Loading banlist file {}", full_path)
            try:
                with open(full_path, encoding="utf-8") as f:
                    parsed = dict(parse_banlists(f.read().splitlines()))
            except Exception as exc:  # one bad file must not stop the others
                self._error("Could not load banlist file: {}", exc)
                continue
            for hash_value, banlist in parsed.items():
                loaded.setdefault(hash_value, banlist)
        with self._lock:
            self._banlists.update(loaded)


class DataProvider(_FilteredObserver):
    """Keeps one card database amalgamating every matching database file."""

    _service = ServiceType.DATA_PROVIDER

    def __init__(self, log_handler, filename_pattern: str) -> None:
        super().__init__(log_handler, filename_pattern)
        self._paths: set[Path] = set()
        self._db: CardDatabase | None = None

    def database(self) -> CardDatabase | None:
        """The current database, or None before any repository was added."""
        with self._lock:
            return self._db

    def on_add(self, path, file_list) -> None:
        self._paths.update(_full_path(path, fn) for fn in file_list if self._matches(fn))
        self._reload_databases()

    def on_diff(self, path, diff: GitDiff) -> None:
        self._paths.difference_update(
            _full_path(path, fn) for fn in diff.removed if self._matches(fn)
        )
        self._paths.update(_full_path(path, fn) for fn in diff.added if self._matches(fn))
        self._reload_databases()

    def _reload_databases(self) -> None:
        new_db = CardDatabase()
        for db_path in sorted(self._paths):
            self._info("Loading card database {}", db_path)
            if not new_db.merge(db_path):
                self._error("Could not merge the database.")
        with self._lock:
            self._db = new_db


class ScriptProvider(_FilteredObserver):
    """Keeps the contents of every matching script, keyed by file name."""

    _service = ServiceType.SCRIPT_PROVIDER

    def __init__(self, log_handler, filename_pattern: str) -> None:
        super().__init__(log_handler, filename_pattern)
        self._scripts: dict[str, bytes] = {}

    def script_from_file_path(self, file_path: str) -> bytes | None:
        with self._lock:
            return self._scripts.get(file_path)

    def on_add(self, path, file_list) -> None:
        self._load_scripts(path, file_list)

    def on_diff(self, path, diff: GitDiff) -> None:
        self._load_scripts(path, diff.added)

    def _load_scripts(self, path, file_list) -> None:
        file_list = list(file_list)
        total = 0
        self._info("Loading {} script files", len(file_list))
        with self._lock:
            for filename in file_list:
                if not self._matches(filename):
                    continue
                full_path = _full_path(path, filename)
                try:
                    content = full_path.read_bytes()
                except OSError:
                    self._error("Could not open script file {}", full_path)
                    continue
                self._scripts[Path(filename).name] = content
                total += 1
        self._info("Total script files loaded: {}", total)