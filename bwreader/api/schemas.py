"""Pydantic request/response models for the REST API.

Field names are snake_case in Python and camelCase on the wire, matching
the snapshot envelope the push channel sends.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncInfoModel(_CamelModel):
    crd_found: bool = False
    last_successful_sync: str = ""
    sync_status: str = ""
    sync_reason: str = ""
    sync_message: str = ""
    crd_creation_time: str = ""
    # to_camel would render "k8SSecretSyncTime".
    k8s_secret_sync_time: str = Field("", alias="k8sSecretSyncTime")


class SecretEntryModel(_CamelModel):
    name: str
    found: bool
    keys: dict[str, str]
    sync_info: SyncInfoModel
    error: str | None = None


class SecretsResponse(_CamelModel):
    """Snapshot envelope returned by ``GET /secrets`` and pushed over ``/ws``."""

    secrets: list[SecretEntryModel]
    namespace: str
    total_found: int
    timestamp: str
    error: str | None = None


class TriggerSyncRequest(_CamelModel):
    secret_names: list[str] | None = None


class TriggerSyncResponse(_CamelModel):
    message: str | None = None
    successes: list[str]
    errors: list[str]


class HealthResponse(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    error: str
    detail: str
