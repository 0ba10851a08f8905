"""Allocation of replay ids and storage of finished replays."""

import struct
import threading
from pathlib import Path

import filelock

from .constants import Level, ServiceType

_ID = struct.Struct("<Q")


class ReplayManager:
    """Hands out replay ids persisted on disk and saves replays by id.

    The last id is shared between threads and processes through a lock file.
    When saving is disabled every id is 0 and nothing is written.
    """

    def __init__(self, log_handler, save: bool, directory) -> None:
        self._log_handler = log_handler
        self._save = bool(save)
        self._dir = Path(directory)
        self._last_id = self._dir / "lastId"
        self._thread_lock = threading.Lock()
        self._file_lock: filelock.FileLock | None = None
        if not self._save:
            self._log(Level.INFO, "Not saving replays.")
            return
        if not self._dir.exists():
            try:
                self._dir.mkdir()
            except OSError as exc:
                raise RuntimeError("could not create replays directory") from exc
        if not self._dir.is_dir():
            raise RuntimeError("replays path is a file, not a directory")
        if not self._last_id.exists():
            try:
                self._last_id.write_bytes(_ID.pack(1))
            except OSError as exc:
                raise RuntimeError("error writing the initial replay id") from exc
        self._file_lock = filelock.FileLock(str(self._dir / "lastId.lock"))
        with self._file_lock:
            try:
                data = self._last_id.read_bytes()
            except OSError:
                return
        if len(data) == _ID.size:
            self._log(Level.INFO, "Current replay id: {}", _ID.unpack(data)[0])
        else:
            self._log(
                Level.WARN, "lastId size is {} instead of {}, file corrupted?", len(data), _ID.size
            )

    def _log(self, level: Level, text: str, *args) -> None:
        self._log_handler.log(ServiceType.REPLAY_MANAGER, level, text, *args)

    def save(self, replay_id: int, replay) -> None:
        """Write the serialized ``replay`` to ``<id>.yrpX``."""
        if not self._save:
            return
        path = self._dir / f"{replay_id}.yrpX"
        try:
            path.write_bytes(bytes(replay.data))
        except OSError:
            self._log(Level.ERROR, "Unable to save replay {}", path)

    def new_id(self) -> int:
        """Reserve the next replay id; 0 if saving is off or the id file is unusable."""
        if not self._save:
            return 0
        with self._thread_lock, self._file_lock:
            try:
                data = self._last_id.read_bytes()
            except OSError:
                self._log(Level.ERROR, "lastId cannot be opened for reading.")
                return 0
            if len(data) != _ID.size:
                self._log(
                    Level.ERROR,
                    "lastId size is {} instead of {}, file corrupted?",
                    len(data),
                    _ID.size,
                )
                return 0
            (current,) = _ID.unpack(data)
            try:
                self._last_id.write_bytes(_ID.pack((current + 1) & 0xFFFFFFFFFFFFFFFF))
            except OSError:
                self._log(Level.ERROR, "Cannot write the new replay id.")
                return 0
            return current