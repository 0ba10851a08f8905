import json
import threading
from datetime import datetime
from unittest.mock import patch

import pytest

from multirole.constants import ErrorCategory, Level, ServiceType
from multirole.sinks import (
    CATEGORY_TITLES,
    RID_FORMAT_ERROR,
    DiscordWebhookSink,
    ECLogProps,
    FileSink,
    Sink,
    StderrSink,
    StdoutSink,
    SvcLogProps,
    format_timestamp,
    stream_format,
)

TS = datetime(2021, 3, 18, 15, 50, 44, 123456)
URI = "https://hooks.example.com/api/webhooks/1/placeholder"


def test_format_timestamp_naive():
    assert format_timestamp(TS) == "[2021-03-18 15:50:44.123]"


def test_format_timestamp_pads_milliseconds():
    ts = datetime(2021, 3, 18, 15, 50, 44, 7000)
    assert format_timestamp(ts).endswith(".007]")


def test_format_timestamp_aware_is_local():
    aware = datetime(2021, 3, 18, 15, 50, 44).astimezone()
    assert format_timestamp(aware) == "[2021-03-18 15:50:44.000]"


def test_stream_format_service():
    line = stream_format(
        TS,
        SvcLogProps(ServiceType.REPLAY_MANAGER, Level.ERROR),
        "lastId cannot be opened for reading.",
    )
    assert line == (
        "[2021-03-18 15:50:44.123] [Service:ReplayManager] [Level:Error] "
        "lastId cannot be opened for reading.\n"
    )


def test_stream_format_error_category():
    line = stream_format(
        TS,
        ECLogProps(ErrorCategory.CORE, 2746210, 3),
        "Core exception at processing: Process is not running.",
    )
    assert line == (
        "[2021-03-18 15:50:44.123] [EC:Core] [ReplayID:2746210] [Turn:3] "
        "Core exception at processing: Process is not running.\n"
    )


def test_null_sink_writes_nothing(capsys):
    Sink().log(TS, SvcLogProps(ServiceType.MULTIROLE, Level.INFO), "hidden")
    captured = capsys.readouterr()
    assert captured.out == "" and captured.err == ""


def test_file_sink_appends(tmp_path):
    path = tmp_path / "service.log"
    props = SvcLogProps(ServiceType.GIT_REPO, Level.WARN)
    with FileSink(path) as sink:
        sink.log(TS, props, "first")
    with FileSink(path) as sink:
        sink.log(TS, props, "second")
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    assert lines == [stream_format(TS, props, "first"), stream_format(TS, props, "second")]


def test_stdout_sink(capsys):
    props = SvcLogProps(ServiceType.DATA_PROVIDER, Level.INFO)
    StdoutSink(threading.Lock()).log(TS, props, "loaded")
    captured = capsys.readouterr()
    assert captured.out == stream_format(TS, props, "loaded")
    assert captured.err == ""


def test_stderr_sink(capsys):
    props = ECLogProps(ErrorCategory.RUSH, 9, 1)
    StderrSink(threading.Lock()).log(TS, props, "boom")
    captured = capsys.readouterr()
    assert captured.err == stream_format(TS, props, "boom")
    assert captured.out == ""


def test_webhook_uri_parts():
    sink = DiscordWebhookSink(URI, "\nReplay ID: {0}")
    assert (sink.scheme, sink.host, sink.path) == (
        "https",
        "hooks.example.com",
        "/api/webhooks/1/placeholder",
    )


@pytest.mark.parametrize("uri", ["no-colon-here", "https:/", "https://hooks.example.com"])
def test_webhook_bad_uri(uri):
    with pytest.raises(ValueError):
        DiscordWebhookSink(uri, "{0}")


def test_webhook_service_payload():
    sink = DiscordWebhookSink(URI, "{0}")
    doc = json.loads(sink.build_payload(SvcLogProps(ServiceType.CORE_PROVIDER, Level.WARN), "hi"))
    embed = doc["embeds"][0]
    assert embed["description"] == "hi"
    assert embed["color"] == 0xFFFF00
    assert embed["footer"] == {"text": "CoreProvider"}


def test_webhook_error_payload():
    sink = DiscordWebhookSink(URI, "\nReplay ID: {0}")
    doc = json.loads(sink.build_payload(ECLogProps(ErrorCategory.SPEED, 42, 7), "oops"))
    embed = doc["embeds"][0]
    assert embed["title"] == CATEGORY_TITLES[ErrorCategory.SPEED]
    assert embed["color"] == 0xFF0000
    assert embed["description"] == "```\noops\n```Turn: 7 | \nReplay ID: 42"


def test_webhook_bad_rid_format():
    sink = DiscordWebhookSink(URI, "{1}")
    doc = json.loads(sink.build_payload(ECLogProps(ErrorCategory.CORE, 42, 7), "oops"))
    assert doc["embeds"][0]["description"].endswith(RID_FORMAT_ERROR)


def test_webhook_log_posts_payload():
    sink = DiscordWebhookSink(URI, "{0}")
    props = SvcLogProps(ServiceType.MULTIROLE, Level.INFO)
    with patch("http.client.HTTPSConnection") as conn_cls:
        sink.log(TS, props, "ping").result(timeout=5)
    args = conn_cls.return_value.request.call_args.args
    assert args[0] == "POST"
    assert args[1] == "/api/webhooks/1/placeholder"
    assert json.loads(args[2].decode("utf-8")) == json.loads(sink.build_payload(props, "ping"))