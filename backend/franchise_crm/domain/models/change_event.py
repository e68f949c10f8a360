"""
Change Event Model
Payload published whenever a partition is written
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from franchise_crm.utils.clock import business_now


class ChangeOperation(str, Enum):
    SAVE = "save"
    UPSERT = "upsert"
    REMOVE = "remove"
    CLEAR = "clear"


class ChangeEvent(BaseModel):
    """(module, tenant) pair that changed, plus what happened."""

    module: str = Field(..., description="Module whose partition changed")
    tenant_id: str = Field(..., description="Owner tenant of the partition")
    operation: ChangeOperation
    record_id: Optional[str] = None
    occurred_at: datetime = Field(default_factory=business_now)

    model_config = {"use_enum_values": True}

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "ChangeEvent":
        return cls.model_validate_json(data)
