"""Half-open date range model."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class DateRange(BaseModel):
    """A half-open ``[start, end)`` interval in UTC."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self

    @property
    def start_string(self) -> str:
        return self.start.isoformat()

    @property
    def end_string(self) -> str:
        return self.end.isoformat()

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def __str__(self) -> str:
        return f"[{self.start_string} -> {self.end_string})"
