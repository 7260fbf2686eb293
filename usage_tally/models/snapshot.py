"""Tally snapshot data model."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import BillingProvider, Granularity, HardwareMeasurementType, ServiceLevel, Usage
from .usage import UsageCalculationKey


class TallySnapshot(BaseModel):
    """Usage totals for one account, key, granularity and period."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 17,
                "account_id": "account123",
                "product_id": "RHEL",
                "sla": "Premium",
                "usage": "_ANY",
                "billing_provider": "_ANY",
                "billing_account_id": None,
                "granularity": "Hourly",
                "snapshot_date": "2026-03-01T10:00:00Z",
                "period_end": "2026-03-01T11:00:00Z",
                "measurements": {"PHYSICAL": {"Cores": 4.0}, "TOTAL": {"Cores": 4.0}},
                "has_unlimited_usage": False,
            }
        }
    )

    id: Optional[int] = Field(None, description="Storage identifier, None until saved")
    account_id: str
    product_id: str
    sla: ServiceLevel
    usage: Usage
    billing_provider: BillingProvider
    billing_account_id: Optional[str] = None
    granularity: Granularity
    snapshot_date: datetime = Field(..., description="Start of the snapshot period")
    period_end: datetime = Field(..., description="Exclusive end of the snapshot period")
    measurements: dict[HardwareMeasurementType, dict[str, float]] = Field(default_factory=dict)
    has_unlimited_usage: bool = Field(
        False, description="Whether any usage in the period is unlimited; totals are advisory then"
    )
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> UsageCalculationKey:
        return UsageCalculationKey(
            product_id=self.product_id,
            sla=self.sla,
            usage=self.usage,
            billing_provider=self.billing_provider,
            billing_account_id=self.billing_account_id,
        )

    def get_measurement(
        self, measurement_type: HardwareMeasurementType, uom: str
    ) -> Optional[float]:
        return self.measurements.get(measurement_type, {}).get(uom)
