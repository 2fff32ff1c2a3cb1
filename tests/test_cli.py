"""Tests for agora-upload CLI helpers."""
import logging
import os

import pytest

from agora_uploader import cli
from agora_uploader.cli import (
    _build_parser,
    _load_env_file,
    _setup_logging,
    _strip_optional_quotes,
    run_cli,
)
from agora_uploader.errors import CLIError
from agora_uploader.orchestrator import UploadOrchestrator

BASE_URL = "http://agora.test"


def test_strip_optional_quotes():
    assert _strip_optional_quotes("'value'") == "value"
    assert _strip_optional_quotes('"value"') == "value"
    assert _strip_optional_quotes("'value\"") == "'value\""
    assert _strip_optional_quotes("v") == "v"


def test_load_env_file(tmp_path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "# server",
                "AGORA_URL=https://agora.example.com",
                "AGORA_API_KEY='abc123'",
                "export LOG_LEVEL=DEBUG",
                "not a pair",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("AGORA_URL", "unset")
    monkeypatch.delenv("AGORA_URL")
    monkeypatch.setenv("AGORA_API_KEY", "unset")
    monkeypatch.delenv("AGORA_API_KEY")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    _load_env_file(env_path)

    assert os.environ["AGORA_URL"] == "https://agora.example.com"
    assert os.environ["AGORA_API_KEY"] == "abc123"
    # existing variables win unless override is set
    assert os.environ["LOG_LEVEL"] == "WARNING"


def test_load_env_file_missing(tmp_path):
    with pytest.raises(CLIError):
        _load_env_file(tmp_path / "missing.env")


def test_setup_logging_defaults_to_info(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert _setup_logging(debug=False, log_level=None) == "INFO"
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_debug_wins(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    assert _setup_logging(debug=True, log_level="WARNING") == "DEBUG"
    assert logging.getLogger().isEnabledFor(logging.DEBUG)


def test_setup_logging_from_env(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert _setup_logging(debug=False, log_level=None) == "WARNING"


def test_parser_defaults(tmp_path):
    args = _build_parser().parse_args(["-p", str(tmp_path)])

    assert args.target_folder == -1
    assert args.timeout == -1
    assert args.verify is False
    assert args.fake is False
    assert args.no_check_certificate is False


def test_parser_requires_path():
    with pytest.raises(SystemExit):
        _build_parser().parse_args([])


def test_missing_source(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert run_cli(["-u", BASE_URL, "-k", "key", "-p", str(tmp_path / "missing")]) == 1


def test_missing_url(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AGORA_URL", "unset")
    monkeypatch.delenv("AGORA_URL")
    assert run_cli(["-k", "key", "-p", str(tmp_path)]) == 1


class TestRunCli:
    @pytest.fixture
    def patched(self, monkeypatch, tmp_path, fake_server):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(
            cli,
            "UploadOrchestrator",
            lambda transport, config: UploadOrchestrator(
                transport, config=config, http_transport=fake_server.transport
            ),
        )
        return fake_server

    def test_upload_file(self, tmp_path, patched):
        source = tmp_path / "scan.dcm"
        source.write_bytes(b"dicom")

        code = run_cli(["-u", BASE_URL, "-k", patched.api_key, "-p", str(source), "-f", "12"])

        assert code == 0
        assert patched.complete_body == {"folder": "12"}
        assert list(patched.filenames.values()) == ["scan.dcm"]

    def test_failed_unit_sets_exit_code(self, tmp_path, patched):
        source = tmp_path / "scan.dcm"
        source.write_bytes(b"dicom")
        patched.fail_uploads_for.add("scan.dcm")

        assert run_cli(["-u", BASE_URL, "-k", patched.api_key, "-p", str(source)]) == 1

    def test_env_file_provides_url_and_key(self, tmp_path, patched, monkeypatch):
        monkeypatch.setenv("AGORA_URL", "unset")
        monkeypatch.delenv("AGORA_URL")
        monkeypatch.setenv("AGORA_API_KEY", "unset")
        monkeypatch.delenv("AGORA_API_KEY")
        env_path = tmp_path / "agora.env"
        env_path.write_text(f"AGORA_URL={BASE_URL}\nAGORA_API_KEY={patched.api_key}\n", encoding="utf-8")
        source = tmp_path / "scan.dcm"
        source.write_bytes(b"dicom")

        assert run_cli(["--env-file", str(env_path), "-p", str(source)]) == 0
