"""Realtime change-feed payloads."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ChangeKind(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UNKNOWN = "UNKNOWN"


class ChangeEvent(BaseModel):
    """Opaque "table changed" notification.

    Consumers must not assume the record id is present or that the change
    matches any particular filter.
    """

    model_config = ConfigDict(frozen=True)

    table: str
    kind: ChangeKind = ChangeKind.UNKNOWN
    record_id: str = ""
