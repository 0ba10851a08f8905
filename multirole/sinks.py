"""Log sinks and the plain-text format they share."""

import http.client
import json
import socket
import ssl
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .constants import ErrorCategory, Level, ServiceType

SERVICE_NAMES = {
    ServiceType.GIT_REPO: "GitRepository",
    ServiceType.MULTIROLE: "Multirole",
    ServiceType.BANLIST_PROVIDER: "BanlistProvider",
    ServiceType.CORE_PROVIDER: "CoreProvider",
    ServiceType.DATA_PROVIDER: "DataProvider",
    ServiceType.LOG_HANDLER: "LogHandler",
    ServiceType.REPLAY_MANAGER: "ReplayManager",
    ServiceType.SCRIPT_PROVIDER: "ScriptProvider",
}

LEVEL_NAMES = {
    Level.INFO: "Info",
    Level.WARN: "Warning",
    Level.ERROR: "Error",
}

CATEGORY_NAMES = {
    ErrorCategory.CORE: "Core",
    ErrorCategory.OFFICIAL: "Official",
    ErrorCategory.SPEED: "Speed",
    ErrorCategory.RUSH: "Rush",
    ErrorCategory.UNOFFICIAL: "Unofficial",
}

LEVEL_COLORS = {
    Level.INFO: 0x00FF00,
    Level.WARN: 0xFFFF00,
    Level.ERROR: 0xFF0000,
}

CATEGORY_TITLES = {
    ErrorCategory.CORE: "Core Error",
    ErrorCategory.OFFICIAL: "Official Script Error",
    ErrorCategory.SPEED: "Speed Script Error",
    ErrorCategory.RUSH: "Rush Script Error",
    ErrorCategory.UNOFFICIAL: "Unofficial Script Error",
}

SERVICE_MESSAGE_TITLE = "Service Message"
RID_FORMAT_ERROR = "Could not format the replay ID, check the sink's ridFormat."
USER_AGENT = "Multirole/1.0"
_ERROR_COLOR = 0xFF0000
_SEND_TIMEOUT = 10.0


@dataclass(frozen=True)
class SvcLogProps:
    """Properties of a service log record."""

    service: ServiceType
    level: Level


@dataclass(frozen=True)
class ECLogProps:
    """Properties of a duel error record."""

    category: ErrorCategory
    replay_id: int
    turn_counter: int


SinkLogProps = SvcLogProps | ECLogProps


def format_timestamp(ts: datetime) -> str:
    """Render ``ts`` in local time as ``[YYYY-mm-dd HH:MM:SS.mmm]``.

    Naive datetimes are taken to be local already.
    """
    local = ts.astimezone() if ts.tzinfo is not None else ts
    return f"[{local:%Y-%m-%d %H:%M:%S}.{local.microsecond // 1000:03d}]"


def stream_format(ts: datetime, props: SinkLogProps, text: str) -> str:
    """Format one log line, newline included.

    ``[time] [Service:name] [Level:lvl] text`` or
    ``[time] [EC:cat] [ReplayID:id] [Turn:n] text``.
    """
    if isinstance(props, SvcLogProps):
        tags = (
            f" [Service:{SERVICE_NAMES[props.service]}]"
            f" [Level:{LEVEL_NAMES[props.level]}]"
        )
    else:
        tags = (
            f" [EC:{CATEGORY_NAMES[props.category]}]"
            f" [ReplayID:{props.replay_id}]"
            f" [Turn:{props.turn_counter}]"
        )
    return f"{format_timestamp(ts)}{tags} {text}\n"


class Sink:
    """A sink that discards every record; the base of all other sinks."""

    def log(self, ts: datetime, props: SinkLogProps, text: str):
        return None


class FileSink(Sink):
    """Appends formatted records to a file."""

    def __init__(self, path) -> None:
        self._file = open(Path(path), "a", encoding="utf-8")
        self._lock = threading.Lock()

    def log(self, ts: datetime, props: SinkLogProps, text: str) -> None:
        line = stream_format(ts, props, text)
        with self._lock:
            self._file.write(line)
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            self._file.close()

    def __enter__(self) -> "FileSink":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class StderrSink(Sink):
    """Writes formatted records to standard error under a shared lock."""

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock

    def log(self, ts: datetime, props: SinkLogProps, text: str) -> None:
        line = stream_format(ts, props, text)
        with self._lock:
            sys.stderr.write(line)
            sys.stderr.flush()


class StdoutSink(Sink):
    """Writes formatted records to standard output under a shared lock."""

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock

    def log(self, ts: datetime, props: SinkLogProps, text: str) -> None:
        line = stream_format(ts, props, text)
        with self._lock:
            sys.stdout.write(line)
            sys.stdout.flush()


class DiscordWebhookSink(Sink):
    """Posts records as embeds to a chat webhook over TLS, in the background.

    Delivery failures are ignored.
    """

    def __init__(self, uri: str, rid_format: str) -> None:
        scheme_colon = uri.find(":")
        if scheme_colon == -1:
            raise ValueError("webhook URI has no scheme separator ':'")
        host_start = scheme_colon + 1 + len("//")
        if host_start > len(uri):
            raise ValueError("webhook URI is too short")
        path_slash = uri.find("/", host_start)
        if path_slash == -1:
            raise ValueError("webhook URI has no path")
        self.scheme = uri[:scheme_colon]
        self.host = uri[host_start:path_slash]
        self.path = uri[path_slash:]
        self.rid_format = rid_format
        self._executor = ThreadPoolExecutor(max_workers=1)

    def build_payload(self, props: SinkLogProps, text: str) -> str:
        """The JSON document posted for one record."""
        if isinstance(props, SvcLogProps):
            embed = {
                "title": SERVICE_MESSAGE_TITLE,
                "description": text,
                "color": LEVEL_COLORS[props.level],
                "footer": {"text": SERVICE_NAMES[props.service]},
            }
        else:
            description = f"```\n{text}\n```Turn: {props.turn_counter} | "
            try:
                description += self.rid_format.format(props.replay_id)
            except (IndexError, KeyError, ValueError, AttributeError):
                description += RID_FORMAT_ERROR
            embed = {
                "title": CATEGORY_TITLES[props.category],
                "color": _ERROR_COLOR,
                "description": description,
            }
        return json.dumps({"embeds": [embed]}, separators=(",", ":"), ensure_ascii=False)

    def _port(self) -> int | None:
        if ":" in self.host:
            return None
        try:
            return socket.getservbyname(self.scheme, "tcp")
        except OSError:
            return http.client.HTTPS_PORT

    def _send(self, body: bytes) -> None:
        headers = {"User-Agent": USER_AGENT, "Content-Type": "application/json"}
        try:
            conn = http.client.HTTPSConnection(
                self.host,
                self._port(),
                timeout=_SEND_TIMEOUT,
                context=ssl.create_default_context(),
            )
            try:
                conn.request("POST", self.path, body, headers)
                conn.getresponse()
            finally:
                conn.close()
        except (OSError, http.client.HTTPException):
            pass

    def log(self, ts: datetime, props: SinkLogProps, text: str) -> Future:
        """Queue the record for delivery; returns the delivery's future."""
        body = self.build_payload(props, text).encode("utf-8")
        return self._executor.submit(self._send, body)