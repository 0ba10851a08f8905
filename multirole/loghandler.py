"""Routing of service and duel error records to configured sinks."""

import threading
import time
from datetime import datetime
from pathlib import Path

from .constants import ErrorCategory, Level, ServiceType
from .sinks import (
    DiscordWebhookSink,
    ECLogProps,
    FileSink,
    Sink,
    StderrSink,
    StdoutSink,
    SvcLogProps,
    format_timestamp,
)

DEFAULT_RID_FORMAT = "\nReplay ID: {0}"

_SERVICE_SINK_NAMES = {
    ServiceType.GIT_REPO: "gitRepo",
    ServiceType.MULTIROLE: "multirole",
    ServiceType.BANLIST_PROVIDER: "banlistProvider",
    ServiceType.CORE_PROVIDER: "coreProvider",
    ServiceType.DATA_PROVIDER: "dataProvider",
    ServiceType.LOG_HANDLER: "logHandler",
    ServiceType.REPLAY_MANAGER: "replayManager",
    ServiceType.SCRIPT_PROVIDER: "scriptProvider",
}

_EC_SINK_NAMES = {
    ErrorCategory.CORE: "core",
    ErrorCategory.OFFICIAL: "official",
    ErrorCategory.SPEED: "speed",
    ErrorCategory.RUSH: "rush",
    ErrorCategory.UNOFFICIAL: "other",
}


def _now() -> datetime:
    return datetime.now().astimezone()


def _format(text: str, args: tuple) -> str:
    return text.format(*args) if args else text


class RoomLogger:
    """Writes timestamped lines about one room to its own file."""

    def __init__(self, path) -> None:
        self._file = open(Path(path), "w", encoding="utf-8")

    def log(self, text: str, *args) -> None:
        self._file.write(f"{format_timestamp(_now())} {_format(text, args)}\n")
        self._file.flush()

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "RoomLogger":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class LogHandler:
    """Sends every record to the sink configured for its service or category.

    ``config`` is the parsed configuration: ``roomLogging`` with ``enabled``
    and ``path``, and ``serviceSinks`` / ``ecSinks`` mapping names to sinks.
    """

    def __init__(self, config: dict) -> None:
        room_cfg = config["roomLogging"]
        self._log_rooms = bool(room_cfg["enabled"])
        self._room_logs_dir = Path(room_cfg["path"])
        self._stderr_lock = threading.Lock()
        self._stdout_lock = threading.Lock()
        self._service_sinks = {
            svc: self._make_sink(config["serviceSinks"][name])
            for svc, name in _SERVICE_SINK_NAMES.items()
        }
        self._ec_sinks = {
            cat: self._make_sink(config["ecSinks"][name]) for cat, name in _EC_SINK_NAMES.items()
        }
        if not self._log_rooms:
            return
        directory = self._room_logs_dir
        if not directory.exists():
            try:
                directory.mkdir()
            except OSError as exc:
                raise RuntimeError("could not create room logs directory") from exc
        if not directory.is_dir():
            raise RuntimeError("room logs path is a file, not a directory")

    def _make_sink(self, spec: dict) -> Sink:
        kind = spec["type"]
        props = spec["properties"]
        if kind == "discordWebhook":
            return DiscordWebhookSink(props["uri"], props.get("ridFormat", DEFAULT_RID_FORMAT))
        if kind == "file":
            return FileSink(props["path"])
        if kind == "stderr":
            return StderrSink(self._stderr_lock)
        if kind == "stdout":
            return StdoutSink(self._stdout_lock)
        if kind == "null":
            return Sink()
        raise ValueError("Wrong type of sink!")

    def log(self, svc: ServiceType, level: Level, text: str, *args) -> None:
        """Log a service record; ``args`` are substituted into ``text``."""
        props = SvcLogProps(ServiceType(svc), Level(level))
        self._service_sinks[props.service].log(_now(), props, _format(text, args))

    def log_error_category(
        self, category: ErrorCategory, replay_id: int, turn_counter: int, text: str, *args
    ) -> None:
        """Log a duel error record; ``args`` are substituted into ``text``."""
        props = ECLogProps(ErrorCategory(category), replay_id, turn_counter)
        self._ec_sinks[props.category].log(_now(), props, _format(text, args))

    def make_room_logger(self, room_id: int) -> RoomLogger | None:
        """A logger for one room, or None if room logging is off or fails."""
        if not self._log_rooms:
            return None
        try:
            return RoomLogger(self._room_logs_dir / f"{time.time_ns()}-{room_id}.log")
        except OSError as exc:
            self.log(
                ServiceType.LOG_HANDLER, Level.ERROR, "Could not create room logger: {}", exc
            )
            return None