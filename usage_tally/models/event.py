"""Usage event data model."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Event(BaseModel):
    """A single usage measurement reported for an instance.

    Enumerated attributes (``hardware_type``, ``cloud_provider``,
    ``billing_provider``, ``sla``, ``usage``) are kept as raw strings and
    mapped to domain enums when the event is folded into instance state.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "event_id": "3f1c0a52-2c1e-4c4e-8d0a-0a5f3a5c9b11",
                "account_id": "account123",
                "service_type": "RHEL System",
                "instance_id": "i-0abc123",
                "timestamp": "2026-03-01T10:15:00Z",
                "role": "Red Hat Enterprise Linux Server",
                "product_ids": ["69"],
                "sla": "Premium",
                "hardware_type": "cloud",
                "cloud_provider": "aws",
                "measurements": {"Cores": 4.0},
            }
        },
    )

    event_id: Optional[str] = Field(None, description="Upstream identifier of the event")
    account_id: str = Field(..., min_length=1, description="Account the instance belongs to")
    service_type: str = Field(..., min_length=1, description="Service type of the instance")
    instance_id: str = Field(..., min_length=1, description="Instance identifier")
    timestamp: datetime = Field(..., description="When the measurement was taken")
    role: Optional[str] = Field(None, description="System role reported by the instance")
    product_ids: list[str] = Field(
        default_factory=list, description="Engineering product ids installed on the instance"
    )
    sla: Optional[str] = None
    usage: Optional[str] = None
    billing_provider: Optional[str] = None
    billing_account_id: Optional[str] = None
    cloud_provider: Optional[str] = None
    hardware_type: Optional[str] = None
    display_name: Optional[str] = None
    inventory_id: Optional[str] = None
    hypervisor_uuid: Optional[str] = None
    subscription_manager_id: Optional[str] = None
    measurements: dict[str, float] = Field(
        default_factory=dict, description="Measured value per unit of measure"
    )

    @field_validator("product_ids", mode="before")
    @classmethod
    def coerce_product_ids(cls, v: Any) -> Any:
        """Accept numeric engineering product ids."""
        if v is None:
            return []
        if isinstance(v, (list, tuple, set)):
            return [str(item) for item in v]
        return v

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
