"""Tag profile data models.

A tag profile maps what an instance reports (its system role and its
engineering product ids) to the product tags usage is tallied under, and
carries per-service-type defaults used when an event leaves a billing
dimension unset.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import BillingProvider, ServiceLevel, Usage


class TagMappingValueType(str, Enum):
    """What a tag mapping value is matched against."""

    ROLE = "role"
    ENG_ID = "eng_id"


class TagMapping(BaseModel):
    """Maps a role or engineering product id to product tags."""

    value: str = Field(..., description="Role name or engineering product id")
    value_type: TagMappingValueType
    tags: list[str] = Field(..., min_length=1)

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v):
        return str(v) if isinstance(v, int) else v


class TagMetaData(BaseModel):
    """Defaults and flags shared by a group of product tags."""

    tags: list[str] = Field(..., min_length=1)
    service_type: Optional[str] = Field(
        None, description="Service type whose events default to these values"
    )
    default_sla: ServiceLevel = ServiceLevel.EMPTY
    default_usage: Usage = Usage.EMPTY
    default_provider: BillingProvider = BillingProvider.EMPTY
    billing_account_id: Optional[str] = None
    unlimited_usage: bool = Field(
        False, description="Usage of these tags is not capped; snapshots are flagged unlimited"
    )

    @field_validator("default_sla", mode="before")
    @classmethod
    def parse_sla(cls, v):
        return ServiceLevel.from_string(v) if isinstance(v, str) else v

    @field_validator("default_usage", mode="before")
    @classmethod
    def parse_usage(cls, v):
        return Usage.from_string(v) if isinstance(v, str) else v

    @field_validator("default_provider", mode="before")
    @classmethod
    def parse_provider(cls, v):
        if isinstance(v, str):
            return BillingProvider.from_string(v) or BillingProvider.EMPTY
        return v


class TagProfile(BaseModel):
    """Complete tag profile configuration."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tag_mappings": [
                    {"value": "69", "value_type": "eng_id", "tags": ["RHEL"]},
                ],
                "tag_metadata": [
                    {
                        "tags": ["RHEL"],
                        "service_type": "RHEL System",
                        "default_sla": "Premium",
                        "default_usage": "Production",
                    }
                ],
            }
        }
    )

    tag_mappings: list[TagMapping] = Field(default_factory=list)
    tag_metadata: list[TagMetaData] = Field(default_factory=list)
