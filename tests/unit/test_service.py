"""Tests for cert_monitor.controller.service — run-once mode from YAML files."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterable
from unittest.mock import MagicMock, patch

import pytest
import requests

from cert_monitor.controller.loop import SchedulingLoop
from cert_monitor.controller.reload import Reloader
from cert_monitor.controller.service import exec_loop, exec_once, load_plan
from cert_monitor.errors import ConfigError, IssueError

MAIN_YAML = """\
vault:
  roleId: role
  secretId: secret
  baseUrl: http://127.0.0.1:8200/
  loginPath: /v1/auth/approle/login
  certPath: /v1/pki/issue/web
includePaths:
  - {include}
downloadedCertPath: {cache}
checkInterval: 1h
"""

CERT_YAML = """\
commonName: {name}
ttl: 720h
renewTtl: 168h
reloadCommand: {reload}
output:
  file:
    name: {output}
  items:
    - certificate
    - privateKey
"""


def _response(status_code: int, body: Any = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode("utf-8") if body is not None else b""
    response.encoding = "utf-8"
    return response


class RecordingReloader(Reloader):
    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def reload(self, commands: Iterable[str]) -> None:
        self.calls.append(sorted(commands))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def conf_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "conf.d"
    directory.mkdir()
    return directory


@pytest.fixture()
def main_file(tmp_path: Path, conf_dir: Path) -> Path:
    path = tmp_path / "cert-monitor.yml"
    path.write_text(
        MAIN_YAML.format(include=conf_dir / "*.yml", cache=tmp_path / "cache"),
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def write_cert_file(conf_dir: Path, tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, reload: str = "''") -> Path:
        path = conf_dir / f"{name}.yml"
        path.write_text(
            CERT_YAML.format(name=name, reload=reload, output=tmp_path / "out" / f"{name}.pem"),
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture()
def vault_post(cert_factory: Callable[..., tuple[str, str]]) -> Iterable[MagicMock]:
    """Patch ``requests.Session.post`` with a fake backend issuing real certificates."""

    def _post(url: str, json: dict[str, Any], **kwargs: Any) -> requests.Response:
        if url.endswith("/login"):
            return _response(200, {"auth": {"client_token": "token"}})
        if json["common_name"] == "broken.example.com":
            return _response(400, {"errors": ["common name not allowed by this role"]})
        cert_pem, key_pem = cert_factory(common_name=json["common_name"])
        return _response(
            200,
            {"data": {"certificate": cert_pem, "private_key": key_pem, "chain": [], "issuing_ca": ""}},
        )

    with patch("requests.Session.post", side_effect=_post) as mock:
        yield mock


# ---------------------------------------------------------------------------
# load_plan
# ---------------------------------------------------------------------------


class TestLoadPlan:
    def test_loads_all_included_files(
        self, main_file: Path, write_cert_file: Callable[..., Path]
    ) -> None:
        write_cert_file("b.example.com")
        write_cert_file("a.example.com")
        plan = load_plan(main_file)
        assert [c.common_name for c in plan.cert_configs] == ["a.example.com", "b.example.com"]

    def test_single_file_restricts_plan(
        self, main_file: Path, write_cert_file: Callable[..., Path]
    ) -> None:
        write_cert_file("a.example.com")
        only = write_cert_file("b.example.com")
        plan = load_plan(main_file, only)
        assert [c.common_name for c in plan.cert_configs] == ["b.example.com"]

    def test_missing_main_config(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Error reading file"):
            load_plan(tmp_path / "absent.yml")


# ---------------------------------------------------------------------------
# exec_once
# ---------------------------------------------------------------------------


class TestExecOnce:
    def test_renews_and_writes_outputs(
        self,
        main_file: Path,
        write_cert_file: Callable[..., Path],
        vault_post: MagicMock,
        tmp_path: Path,
    ) -> None:
        write_cert_file("a.example.com")
        write_cert_file("b.example.com")

        result = exec_once(main_file, no_reload=True)

        assert result.renewed == ["a.example.com", "b.example.com"]
        assert result.ok
        assert vault_post.call_count == 4
        for name in ("a.example.com", "b.example.com"):
            assert (tmp_path / "cache" / name / "cert.pem").exists()
            assert "PRIVATE KEY" in (tmp_path / "out" / f"{name}.pem").read_text()

    def test_second_run_skips_valid_certificates(
        self,
        main_file: Path,
        write_cert_file: Callable[..., Path],
        vault_post: MagicMock,
    ) -> None:
        write_cert_file("a.example.com")
        exec_once(main_file, no_reload=True)
        vault_post.reset_mock()

        result = exec_once(main_file, no_reload=True)

        assert result.skipped == ["a.example.com"]
        vault_post.assert_not_called()

    def test_partial_failure_collected(
        self,
        main_file: Path,
        write_cert_file: Callable[..., Path],
        vault_post: MagicMock,
    ) -> None:
        write_cert_file("a.example.com")
        write_cert_file("broken.example.com")
        write_cert_file("c.example.com")

        result = exec_once(main_file, no_reload=True)

        assert result.renewed == ["a.example.com", "c.example.com"]
        assert [name for name, _ in result.errors] == ["broken.example.com"]
        assert isinstance(result.errors[0][1], IssueError)

    def test_single_config_fails_fast(
        self,
        main_file: Path,
        write_cert_file: Callable[..., Path],
        vault_post: MagicMock,
    ) -> None:
        broken = write_cert_file("broken.example.com")
        result = exec_once(main_file, no_reload=True, cert_config_path=broken)
        assert result.aborted
        assert not result.ok

    def test_reload_commands_run_once(
        self,
        main_file: Path,
        write_cert_file: Callable[..., Path],
        vault_post: MagicMock,
    ) -> None:
        write_cert_file("a.example.com", reload="reload-web")
        write_cert_file("b.example.com", reload="reload-web")
        reloader = RecordingReloader()

        with patch("cert_monitor.controller.service.ShellReloader", return_value=reloader):
            exec_once(main_file)

        assert reloader.calls == [["reload-web"]]

    def test_invalid_cert_config_is_config_error(
        self, main_file: Path, conf_dir: Path
    ) -> None:
        (conf_dir / "bad.yml").write_text("commonName: x\nttl: 1h\nrenewTtl: 2h\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="bad.yml"):
            exec_once(main_file)


# ---------------------------------------------------------------------------
# exec_loop
# ---------------------------------------------------------------------------


class TestExecLoop:
    def test_first_batch_then_stop(
        self,
        main_file: Path,
        write_cert_file: Callable[..., Path],
        vault_post: MagicMock,
        tmp_path: Path,
    ) -> None:
        write_cert_file("a.example.com")

        def _run_once(loop: SchedulingLoop[Any]) -> int:
            loop.stop()
            return original_run(loop)

        original_run = SchedulingLoop.run
        with patch.object(SchedulingLoop, "install_signal_handlers") as install, patch.object(
            SchedulingLoop, "run", autospec=True, side_effect=_run_once
        ):
            batches = exec_loop(main_file, no_reload=True)

        assert batches == 1
        install.assert_called_once()
        assert (tmp_path / "out" / "a.example.com.pem").exists()

    def test_missing_config_is_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            exec_loop(tmp_path / "absent.yml")
