"""Tests for the REST API.

Uses FastAPI's TestClient against mocked reader and trigger components,
plus hypothesis fuzzing of the trigger body to check that:
 1. No 500s from malformed input (anything unparseable means "all names")
 2. Response body is always valid JSON
 3. Error responses always have ``error`` + ``detail``
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from hypothesis import given, settings
from hypothesis import strategies as st

from bwreader.api.app import create_app
from bwreader.hub import BroadcastHub
from bwreader.models.config import BwReaderConfig
from bwreader.models.secrets import SecretEntry, Snapshot, SyncInfo
from bwreader.reader import STANDALONE_ERROR
from bwreader.sync import TriggerResult

_CONFIGURED = ["db-creds", "api-key"]

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _make_snapshot(error: str | None = None) -> Snapshot:
    return Snapshot(
        entries=(
            SecretEntry(
                name="db-creds",
                found=True,
                keys={"password": "hunter2"},
                sync_info=SyncInfo(crd_found=True, sync_status="True", last_successful_sync="2026-03-01T09:00:00Z"),
            ),
            SecretEntry(name="api-key", error="Secret 'api-key' not found"),
        ),
        namespace="apps",
        timestamp="2026-03-01T09:30:00Z",
        error=error,
    )


def _make_reader(snapshot: Snapshot | None = None) -> MagicMock:
    reader = MagicMock()
    reader.read_snapshot = AsyncMock(return_value=snapshot or _make_snapshot())
    return reader


def _make_trigger(result: TriggerResult | None = None, available: bool = True) -> MagicMock:
    trigger = MagicMock()
    trigger.available = available
    trigger.trigger = AsyncMock(return_value=result or TriggerResult(successes=list(_CONFIGURED)))
    return trigger


def _make_client(reader: MagicMock | None = None, trigger: MagicMock | None = None) -> TestClient:
    app = create_app(
        hub=BroadcastHub(),
        reader=reader or _make_reader(),
        sync_trigger=trigger or _make_trigger(),
        config=BwReaderConfig(namespace="apps", secret_names=list(_CONFIGURED), app_version="1.2.3"),
    )
    return TestClient(app, raise_server_exceptions=False)


def _assert_valid_json_response(resp, allowed_status_codes: set[int] | None = None) -> dict:
    assert resp.headers.get("content-type", "").startswith("application/json")
    body = resp.json()
    assert isinstance(body, dict)
    if allowed_status_codes is not None:
        assert resp.status_code in allowed_status_codes, f"Unexpected status {resp.status_code}, body={body}"
    if resp.status_code >= 400:
        assert "error" in body
        assert "detail" in body
    return body


# ===========================================================================
# GET /api/v1/secrets
# ===========================================================================


class TestSecrets:
    def test_returns_snapshot_envelope(self) -> None:
        reader = _make_reader()
        resp = _make_client(reader=reader).get("/api/v1/secrets")

        body = _assert_valid_json_response(resp, {200})
        assert body == _make_snapshot().to_envelope()
        assert body["totalFound"] == 1
        assert body["secrets"][0]["syncInfo"]["lastSuccessfulSync"] == "2026-03-01T09:00:00Z"
        reader.read_snapshot.assert_awaited_once_with(_CONFIGURED)

    def test_standalone_envelope_carries_error(self) -> None:
        reader = _make_reader(_make_snapshot(error=STANDALONE_ERROR))
        body = _make_client(reader=reader).get("/api/v1/secrets").json()
        assert body["error"] == STANDALONE_ERROR

    def test_unhandled_error_is_masked(self) -> None:
        reader = MagicMock()
        reader.read_snapshot = AsyncMock(side_effect=RuntimeError("secret internals"))
        resp = _make_client(reader=reader).get("/api/v1/secrets")

        body = _assert_valid_json_response(resp, {500})
        assert body == {"error": "INTERNAL_ERROR", "detail": "An unexpected error occurred."}


# ===========================================================================
# POST /api/v1/trigger-sync
# ===========================================================================


class TestTriggerSync:
    def test_empty_body_targets_all(self) -> None:
        trigger = _make_trigger()
        resp = _make_client(trigger=trigger).post("/api/v1/trigger-sync")

        body = _assert_valid_json_response(resp, {200})
        assert body == {"message": "Sync triggered successfully", "successes": _CONFIGURED, "errors": []}
        trigger.trigger.assert_awaited_once_with(None)

    def test_explicit_names_are_forwarded(self) -> None:
        trigger = _make_trigger()
        _make_client(trigger=trigger).post("/api/v1/trigger-sync", json={"secretNames": ["api-key"]})
        trigger.trigger.assert_awaited_once_with(["api-key"])

    def test_partial_failure_is_206(self) -> None:
        trigger = _make_trigger(TriggerResult(successes=["db-creds"], errors=["api-key: failed to get CRD"]))
        resp = _make_client(trigger=trigger).post("/api/v1/trigger-sync")

        body = _assert_valid_json_response(resp, {206})
        assert body == {"successes": ["db-creds"], "errors": ["api-key: failed to get CRD"]}

    def test_standalone_mode_is_503(self) -> None:
        trigger = _make_trigger(available=False)
        resp = _make_client(trigger=trigger).post("/api/v1/trigger-sync")

        body = _assert_valid_json_response(resp, {503})
        assert body["error"] == "STANDALONE_MODE"
        assert body["detail"] == STANDALONE_ERROR
        trigger.trigger.assert_not_awaited()

    @given(body=st.binary(max_size=300))
    @settings(max_examples=50)
    def test_arbitrary_bytes_never_500(self, body: bytes) -> None:
        resp = _make_client().post("/api/v1/trigger-sync", content=body)
        _assert_valid_json_response(resp, {200})

    @given(
        payload=st.recursive(
            st.none() | st.booleans() | st.integers() | st.text(max_size=20),
            lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=10), children, max_size=4),
            max_leaves=10,
        )
    )
    @settings(max_examples=50)
    def test_malformed_json_means_all_names(self, payload) -> None:
        trigger = _make_trigger()
        resp = _make_client(trigger=trigger).post("/api/v1/trigger-sync", content=json.dumps(payload))

        _assert_valid_json_response(resp, {200})
        (names,) = trigger.trigger.await_args.args
        assert names is None or (isinstance(names, list) and all(isinstance(n, str) for n in names))


# ===========================================================================
# GET /api/v1/health, GET /metrics
# ===========================================================================


class TestHealthAndMetrics:
    def test_health_reports_configured_version(self) -> None:
        resp = _make_client().get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "version": "1.2.3"}

    def test_metrics_exposition(self) -> None:
        resp = _make_client().get("/metrics")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "bwreader_hub_connections" in resp.text
