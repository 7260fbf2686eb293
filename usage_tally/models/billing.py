"""Messages exchanged with the billing boundary."""

from pydantic import BaseModel, Field

from .snapshot import TallySnapshot


class TallySummary(BaseModel):
    """Snapshots written by one tally run for an account."""

    account_id: str = Field(..., min_length=1)
    tally_snapshots: list[TallySnapshot] = Field(default_factory=list)


class BillableUsage(BaseModel):
    """Usage forwarded to the downstream billing consumer."""

    account_id: str = Field(..., min_length=1)
    billable_tally_snapshots: list[TallySnapshot] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: TallySummary) -> "BillableUsage":
        return cls(
            account_id=summary.account_id,
            billable_tally_snapshots=list(summary.tally_snapshots),
        )
