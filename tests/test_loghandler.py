import re

import pytest

from multirole.constants import ErrorCategory, Level, ServiceType
from multirole.loghandler import LogHandler, RoomLogger

SERVICE_NAMES = [
    "gitRepo",
    "multirole",
    "banlistProvider",
    "coreProvider",
    "dataProvider",
    "logHandler",
    "replayManager",
    "scriptProvider",
]
EC_NAMES = ["core", "official", "speed", "rush", "other"]
NULL = {"type": "null", "properties": {}}


def make_config(tmp_path, enabled=False, service=None, ec=None):
    service = service or {}
    ec = ec or {}
    return {
        "roomLogging": {"enabled": enabled, "path": str(tmp_path / "rooms")},
        "serviceSinks": {n: service.get(n, NULL) for n in SERVICE_NAMES},
        "ecSinks": {n: ec.get(n, NULL) for n in EC_NAMES},
    }


def file_spec(path):
    return {"type": "file", "properties": {"path": str(path)}}


def test_service_log_to_file(tmp_path):
    out = tmp_path / "svc.log"
    handler = LogHandler(make_config(tmp_path, service={"multirole": file_spec(out)}))
    handler.log(ServiceType.MULTIROLE, Level.WARN, "hello {}", 5)
    handler.log(ServiceType.GIT_REPO, Level.INFO, "elsewhere")
    text = out.read_text(encoding="utf-8")
    assert text.endswith(" [Service:Multirole] [Level:Warning] hello 5\n")
    assert "elsewhere" not in text


def test_unofficial_goes_to_other_sink(tmp_path):
    out = tmp_path / "ec.log"
    handler = LogHandler(make_config(tmp_path, ec={"other": file_spec(out)}))
    handler.log_error_category(ErrorCategory.UNOFFICIAL, 11, 2, "bad {}", "script")
    assert out.read_text(encoding="utf-8").endswith(
        " [EC:Unofficial] [ReplayID:11] [Turn:2] bad script\n"
    )


def test_stdout_sink(tmp_path, capsys):
    stdout = {"type": "stdout", "properties": {}}
    handler = LogHandler(make_config(tmp_path, service={"dataProvider": stdout}))
    handler.log(ServiceType.DATA_PROVIDER, Level.ERROR, "cannot merge")
    assert capsys.readouterr().out.endswith("[Service:DataProvider] [Level:Error] cannot merge\n")


def test_wrong_sink_type(tmp_path):
    config = make_config(tmp_path, service={"gitRepo": {"type": "bogus", "properties": {}}})
    with pytest.raises(ValueError):
        LogHandler(config)


def test_missing_sink_entry(tmp_path):
    config = make_config(tmp_path)
    del config["ecSinks"]["rush"]
    with pytest.raises(KeyError):
        LogHandler(config)


def test_room_logging_disabled(tmp_path):
    handler = LogHandler(make_config(tmp_path))
    assert handler.make_room_logger(1) is None
    assert not (tmp_path / "rooms").exists()


def test_room_logger_created(tmp_path):
    handler = LogHandler(make_config(tmp_path, enabled=True))
    assert (tmp_path / "rooms").is_dir()
    logger = handler.make_room_logger(7)
    logger.log("joined {}", "alice")
    logger.close()
    files = list((tmp_path / "rooms").iterdir())
    assert len(files) == 1
    assert re.fullmatch(r"\d+-7\.log", files[0].name)
    line = files[0].read_text(encoding="utf-8")
    assert re.fullmatch(r"\[\d{4}-\d\d-\d\d \d\d:\d\d:\d\d\.\d{3}\] joined alice\n", line)


def test_room_path_is_file(tmp_path):
    (tmp_path / "rooms").write_text("x")
    with pytest.raises(RuntimeError):
        LogHandler(make_config(tmp_path, enabled=True))


def test_room_logger_failure_is_logged(tmp_path):
    out = tmp_path / "lh.log"
    handler = LogHandler(make_config(tmp_path, enabled=True, service={"logHandler": file_spec(out)}))
    (tmp_path / "rooms").rmdir()
    assert handler.make_room_logger(3) is None
    assert "[Service:LogHandler] [Level:Error] Could not create room logger:" in out.read_text(
        encoding="utf-8"
    )


def test_room_logger_direct(tmp_path):
    path = tmp_path / "room.log"
    with RoomLogger(path) as logger:
        logger.log("plain")
        logger.log("turn {} of {}", 1, 2)
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [line.split("] ", 1)[1] for line in lines] == ["plain", "turn 1 of 2"]


def test_room_logger_bad_path(tmp_path):
    with pytest.raises(OSError):
        RoomLogger(tmp_path / "missing" / "room.log")