import json

import pytest

from meshgate.cloud import DEFAULT_SERVER_HOST, InvalidArgumentError
from meshgate.config.loader import (
    apply_overrides,
    camel_to_snake,
    get_config_path,
    load_config,
    save_config,
    snake_to_camel,
)
from meshgate.config.schema import Config

UUID = "11111111-1111-1111-1111-111111111111"
TOKEN = "a" * 40


def test_load_config_reads_camel_case_cloud_section(tmp_path) -> None:  # type: ignore[no-untyped-def]
    path = tmp_path / "gateway.json"
    path.write_text(
        json.dumps(
            {
                "cloud": {
                    "uuid": UUID,
                    "token": TOKEN,
                    "serverName": "cloud.test",
                    "port": 3000,
                },
                "tty": "/dev/ttyUSB0",
                "unknownSection": {"x": 1},
            }
        )
    )

    cfg = load_config(path)

    assert cfg.cloud.host == "cloud.test"
    assert cfg.cloud.port == 3000
    assert cfg.cloud.scheme == "http"
    assert cfg.proto == "http"
    assert cfg.tty == "/dev/ttyUSB0"
    assert cfg.credential().uuid == UUID


def test_load_config_defaults_and_rejects_non_object(tmp_path) -> None:  # type: ignore[no-untyped-def]
    path = tmp_path / "empty.json"
    path.write_text("{}")
    cfg = load_config(path)
    assert cfg.cloud.host == DEFAULT_SERVER_HOST
    assert cfg.cloud.port == 80

    with pytest.raises(InvalidArgumentError):
        cfg.credential()

    path.write_text("[1, 2]")
    with pytest.raises(ValueError):
        load_config(path)


def test_apply_overrides_prefers_command_line_values() -> None:
    cfg = Config.model_validate({"cloud": {"uuid": UUID, "token": TOKEN, "server_name": "file.test", "port": 3000}})

    apply_overrides(cfg, host=None, port=0, proto=None, tty=None)
    assert (cfg.cloud.host, cfg.cloud.port, cfg.proto, cfg.tty) == ("file.test", 3000, "http", None)

    apply_overrides(cfg, host="cli.test", port=8080, proto="http", tty="/dev/ttyACM0")
    assert (cfg.cloud.host, cfg.cloud.port, cfg.tty) == ("cli.test", 8080, "/dev/ttyACM0")


def test_save_config_writes_camel_case_and_round_trips(tmp_path) -> None:  # type: ignore[no-untyped-def]
    cfg = Config.model_validate({"cloud": {"uuid": UUID, "token": TOKEN, "server_name": "cloud.test", "port": 3000}})
    path = save_config(cfg, tmp_path / "nested" / "config.json")

    raw = json.loads(path.read_text())
    assert raw["cloud"]["serverName"] == "cloud.test"
    assert "server_name" not in raw["cloud"]

    reloaded = load_config(path)
    assert reloaded.cloud == cfg.cloud


def test_config_path_follows_data_dir_env(monkeypatch, tmp_path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("MESHGATE_DATA_DIR", str(tmp_path / "state"))
    assert get_config_path() == tmp_path / "state" / "config.json"
    assert (tmp_path / "state").is_dir()


def test_key_case_conversion() -> None:
    assert camel_to_snake("serverName") == "server_name"
    assert camel_to_snake("port") == "port"
    assert snake_to_camel("server_name") == "serverName"
