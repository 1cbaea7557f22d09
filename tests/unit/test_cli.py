"""Tests for the bwreader command-line client."""

from __future__ import annotations

import json

import httpx
import pytest
from click.testing import CliRunner

import bwreader.cli.main as cli_main
from bwreader.cli import cli

_ENVELOPE = {
    "secrets": [
        {
            "name": "db-creds",
            "found": True,
            "keys": {"password": "hunter2"},
            "syncInfo": {"crdFound": True, "syncStatus": "True", "lastSuccessfulSync": "2026-03-01T09:00:00Z"},
            "error": None,
        },
        {
            "name": "smtp",
            "found": False,
            "keys": {},
            "syncInfo": {"crdFound": False},
            "error": "Secret 'smtp' not found",
        },
    ],
    "namespace": "apps",
    "totalFound": 1,
    "timestamp": "2026-03-01T09:30:00Z",
}


def _install_transport(monkeypatch: pytest.MonkeyPatch, handler) -> list[httpx.Request]:
    """Route every CLI request through *handler*; returns the captured requests."""
    seen: list[httpx.Request] = []

    def _handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def _make_client(url: str) -> httpx.Client:
        return httpx.Client(base_url=url, transport=httpx.MockTransport(_handle))

    monkeypatch.setattr(cli_main, "_make_client", _make_client)
    return seen


class TestSecretsCommand:
    def test_table_output(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install_transport(monkeypatch, lambda r: httpx.Response(200, json=_ENVELOPE))
        result = CliRunner().invoke(cli, ["secrets"])

        assert result.exit_code == 0, result.output
        assert "found=1/2" in result.output
        assert "db-creds" in result.output
        assert "last sync 2026-03-01T09:00:00Z" in result.output
        assert "Secret 'smtp' not found" in result.output
        assert "hunter2" not in result.output

    def test_json_output(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install_transport(monkeypatch, lambda r: httpx.Response(200, json=_ENVELOPE))
        result = CliRunner().invoke(cli, ["secrets", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == _ENVELOPE

    def test_url_option_and_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen = _install_transport(monkeypatch, lambda r: httpx.Response(200, json=_ENVELOPE))
        CliRunner().invoke(cli, ["secrets"], env={"BWREADER_URL": "http://reader.apps:9000/"})
        assert str(seen[0].url) == "http://reader.apps:9000/api/v1/secrets"

    def test_connection_failure_exits_non_zero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        _install_transport(monkeypatch, _refuse)
        result = CliRunner().invoke(cli, ["secrets"])

        assert result.exit_code == 1
        assert "cannot reach http://localhost:8080" in result.output


class TestTriggerSyncCommand:
    def test_names_are_sent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen = _install_transport(
            monkeypatch,
            lambda r: httpx.Response(
                200, json={"message": "Sync triggered successfully", "successes": ["smtp"], "errors": []}
            ),
        )
        result = CliRunner().invoke(cli, ["trigger-sync", "smtp"])

        assert result.exit_code == 0
        assert "triggered smtp" in result.output
        assert json.loads(seen[0].content) == {"secretNames": ["smtp"]}

    def test_no_names_sends_empty_body(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen = _install_transport(
            monkeypatch, lambda r: httpx.Response(200, json={"successes": [], "errors": []})
        )
        CliRunner().invoke(cli, ["trigger-sync"])
        assert seen[0].content == b""

    def test_partial_failure_exits_2(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install_transport(
            monkeypatch,
            lambda r: httpx.Response(206, json={"successes": ["a"], "errors": ["b: failed to get CRD"]}),
        )
        result = CliRunner().invoke(cli, ["trigger-sync"])
        assert result.exit_code == 2

    def test_standalone_error_is_reported(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install_transport(
            monkeypatch,
            lambda r: httpx.Response(503, json={"error": "STANDALONE_MODE", "detail": "no cluster"}),
        )
        result = CliRunner().invoke(cli, ["trigger-sync"])

        assert result.exit_code == 1
        assert "HTTP 503: STANDALONE_MODE: no cluster" in result.output


class TestHealthCommand:
    def test_healthy(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _install_transport(monkeypatch, lambda r: httpx.Response(200, json={"status": "healthy", "version": "1.0.0"}))
        result = CliRunner().invoke(cli, ["health"])

        assert result.exit_code == 0
        assert result.output.strip() == "healthy (version 1.0.0)"
