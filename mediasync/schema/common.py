from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    stage: Optional[str] = None


class HealthStatus(BaseModel):
    status: Literal["ok", "degraded", "down"] = "ok"
    version: Optional[str] = None
    components: Dict[str, Literal["ok", "down"]] = Field(default_factory=dict)
