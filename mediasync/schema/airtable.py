from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AirtableRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    fields: Dict[str, Any] = Field(default_factory=dict)
    created_time: Optional[str] = Field(None, alias="createdTime")


class AirtableRecordsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    records: List[AirtableRecord] = Field(default_factory=list)
