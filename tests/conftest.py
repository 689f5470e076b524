# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from vaultsync.logging.init import reset_logging
from vaultsync.models.config_models import EndpointConfig, SyncSettings
from vaultsync.soap.transport import SoapResponse

ENDPOINT_URL = "http://vault.test/Vaultsite/APIwebservice.asmx"


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "output").mkdir()
        monkeypatch.chdir(p)
        for var in ("VAULT_API_BASE", "VAULT_SOAP_VERSION", "VAULT_SOAP_NAMESPACE",
                    "VAULT_SOAP_ACTION", "VAULT_UPDATE_SOAP_ACTION"):
            monkeypatch.delenv(var, raising=False)
        reset_logging()
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""endpoint:
  url: {ENDPOINT_URL}
  soap_version: "1.1"
  timeout_seconds: 5
rules:
  max_lengths:
    name: 40
  default_company: Merdeka Tsingsan Indonesia
sources:
  jobs_root: ./output
max_workers: 1
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def settings() -> SyncSettings:
    return SyncSettings(endpoint=EndpointConfig(url=ENDPOINT_URL))


def soap_ok(code: str | None = "0", message: str | None = "Success", http_status: int = 200,
            identifier: str | None = None) -> SoapResponse:
    parts = []
    if code is not None:
        parts.append(f"<ErrCode>{code}</ErrCode>")
    if message is not None:
        parts.append(f"<ErrMessage>{message}</ErrMessage>")
    return SoapResponse(http_status, code, message, identifier, "<Result>" + "".join(parts) + "</Result>")


@pytest.fixture()
def fake_transport() -> MagicMock:
    """Transport double answering every call with HTTP 200 / ErrCode 0."""
    transport = MagicMock()
    transport.send.return_value = soap_ok()
    return transport


def write_csv(path: Path, header: list[str], rows: list[list[str]]) -> Path:
    lines = [",".join(header)] + [",".join(r) for r in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture()
def job_dir(temp_workdir: Path) -> Path:
    d = temp_workdir / "output" / "job-1"
    d.mkdir()
    return d


@pytest.fixture()
def csv_writer():
    """write_csv(path, header, rows) for tests that build their own inputs."""
    return write_csv


@pytest.fixture()
def soap_reply():
    """soap_ok(code, message, http_status, identifier) factory."""
    return soap_ok
