"""Schemas for the connection completion and disconnect endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CompleteConnectionPayload(BaseModel):
    """Account chosen by the user after the platform callback."""

    model_config = ConfigDict(populate_by_name=True)

    pending_ref: str = Field(..., alias="pendingRef", min_length=1)
    property_id: str = Field(..., alias="propertyId", min_length=1)
    property_name: str = Field(..., alias="propertyName")
    client_id: str = Field(..., alias="clientId", min_length=1)


class DisconnectPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_id: str = Field(..., alias="connectionId", min_length=1)
    client_id: str = Field(..., alias="clientId", min_length=1)


__all__ = ["CompleteConnectionPayload", "DisconnectPayload"]
