import asyncio
import json

import httpx
import pytest
from typer.testing import CliRunner

from meshgate import __version__
from meshgate.cli.commands import _run_gateway, app
from meshgate.cloud import Credential, HttpCloudTransport, InvalidArgumentError
from meshgate.config.schema import Config

runner = CliRunner()

UUID = "11111111-1111-1111-1111-111111111111"
TOKEN = "0123456789abcdef0123456789abcdef01234567"


async def _resolve(host: str, port: int) -> str:
    return "127.0.0.1"


def _write_config(tmp_path, **cloud) -> str:  # type: ignore[no-untyped-def]
    path = tmp_path / "config.json"
    payload = {"uuid": UUID, "token": TOKEN, "serverName": "cloud.test", "port": 3000}
    payload.update(cloud)
    path.write_text(json.dumps({"cloud": payload}))
    return str(path)


def _config() -> Config:
    return Config.model_validate({"cloud": {"uuid": UUID, "token": TOKEN, "server_name": "cloud.test", "port": 3000}})


def test_version_option() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_config_check_passes_and_masks_token(tmp_path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["config", "check", "--config", _write_config(tmp_path)])

    assert result.exit_code == 0
    assert "Config validation passed" in result.stdout
    assert TOKEN not in result.stdout


def test_config_check_rejects_short_token(tmp_path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["config", "check", "--config", _write_config(tmp_path, token="short")])

    assert result.exit_code == 1
    assert "Invalid credential" in result.stdout


def test_config_check_fails_when_missing_or_invalid_json(tmp_path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["config", "check", "--config", str(tmp_path / "missing.json")])
    assert result.exit_code == 2
    assert "Config file not found" in result.stdout

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    result = runner.invoke(app, ["config", "check", "--config", str(broken)])
    assert result.exit_code == 2
    assert "Invalid JSON" in result.stdout


def test_config_init_writes_template_once(tmp_path) -> None:  # type: ignore[no-untyped-def]
    path = tmp_path / "config.json"

    result = runner.invoke(app, ["config", "init", "--config", str(path)])
    assert result.exit_code == 0
    raw = json.loads(path.read_text())
    assert raw["cloud"]["serverName"] == "meshblu.octoblu.com"
    assert raw["cloud"]["uuid"] == ""

    result = runner.invoke(app, ["config", "init", "--config", str(path)])
    assert result.exit_code == 1

    result = runner.invoke(app, ["config", "init", "--config", str(path), "--force"])
    assert result.exit_code == 0


def test_run_exits_with_config_error_codes(tmp_path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["run", "--config", str(tmp_path / "missing.json")])
    assert result.exit_code == 2

    result = runner.invoke(app, ["run", "--config", _write_config(tmp_path, token="short"), "--no-logs"])
    assert result.exit_code == 2
    assert "Invalid credential" in result.stdout

    result = runner.invoke(app, ["run", "--config", _write_config(tmp_path), "--proto", "ws", "--no-logs"])
    assert result.exit_code == 2
    assert "Unknown cloud protocol" in result.stdout


@pytest.mark.asyncio
async def test_run_gateway_signs_in_watches_and_cleans_up() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=json.dumps({"devices": [{"uuid": UUID, "temp": 21}]}).encode())

    transport = HttpCloudTransport(
        http_transport=httpx.MockTransport(handler),
        resolver=_resolve,
        watch_interval_seconds=0.01,
    )
    stop = asyncio.Event()
    asyncio.get_running_loop().call_later(0.1, stop.set)

    code = await _run_gateway(transport, _config(), Credential(uuid=UUID, token=TOKEN), stop_event=stop)

    assert code == 0
    assert len(requests) >= 2
    assert all(str(r.url) == f"http://cloud.test:3000/devices/{UUID}" for r in requests)
    assert len(transport.watches) == 0
    with pytest.raises(InvalidArgumentError):
        _ = transport.endpoints


@pytest.mark.asyncio
async def test_run_gateway_returns_failure_on_rejected_sign_in() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, content=b'{"error":"unauthorized"}')

    transport = HttpCloudTransport(http_transport=httpx.MockTransport(handler), resolver=_resolve)

    code = await _run_gateway(transport, _config(), Credential(uuid=UUID, token=TOKEN))

    assert code == 1
    with pytest.raises(InvalidArgumentError):
        _ = transport.endpoints
