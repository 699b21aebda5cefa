"""Pydantic models for the /sync wire format shared by client and server."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SyncMutation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str = Field(min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int


class SyncResult(BaseModel):
    action: str
    timestamp: int
    status: Literal["ok", "error"]
    error: Optional[str] = None


class SyncResponse(BaseModel):
    results: List[SyncResult] = Field(default_factory=list)
    synced: int = 0
    failed: int = 0


class ActionResponse(BaseModel):
    action: str
    status: Literal["ok"] = "ok"


class ErrorResponse(BaseModel):
    error: str


__all__ = ["SyncMutation", "SyncResult", "SyncResponse", "ActionResponse", "ErrorResponse"]
