"""Enumerations for hardware, service level, usage, billing provider and granularity."""

from enum import Enum
from typing import Optional


class HostHardwareType(str, Enum):
    """Hardware type recorded on an instance."""

    PHYSICAL = "PHYSICAL"
    VIRTUALIZED = "VIRTUALIZED"
    CLOUD = "CLOUD"


class HardwareMeasurementType(str, Enum):
    """Hardware dimension a measurement is tallied under."""

    PHYSICAL = "PHYSICAL"
    VIRTUAL = "VIRTUAL"
    AWS = "AWS"
    AZURE = "AZURE"
    ALIBABA = "ALIBABA"
    GOOGLE = "GOOGLE"
    TOTAL = "TOTAL"


class _LenientValueEnum(str, Enum):
    """Enum whose ``from_string`` maps unknown or missing values to EMPTY."""

    @classmethod
    def from_string(cls, value: Optional[str]):
        if value is None:
            return cls.EMPTY
        normalized = value.strip().lower()
        for member in cls:
            if member is cls.ANY:
                continue
            if normalized in (member.value.lower(), member.name.lower()):
                return member
        return cls.EMPTY


class ServiceLevel(_LenientValueEnum):
    """Service level agreement of a product."""

    EMPTY = ""
    PREMIUM = "Premium"
    STANDARD = "Standard"
    SELF_SUPPORT = "Self-Support"
    ANY = "_ANY"


class Usage(_LenientValueEnum):
    """Intended usage of a product."""

    EMPTY = ""
    PRODUCTION = "Production"
    DEVELOPMENT_TEST = "Development/Test"
    DISASTER_RECOVERY = "Disaster Recovery"
    ANY = "_ANY"


class BillingProvider(str, Enum):
    """Marketplace or vendor that bills the usage."""

    EMPTY = ""
    RED_HAT = "red hat"
    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"
    ORACLE = "oracle"
    ANY = "_ANY"

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["BillingProvider"]:
        """
        Strict lookup by value or name, case-insensitive.

        Returns None for a missing or blank value.

        Raises:
            ValueError: If the value names no concrete provider
        """
        if value is None or not value.strip():
            return None
        normalized = value.strip().lower()
        for member in cls:
            if member in (cls.EMPTY, cls.ANY):
                continue
            if normalized in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unsupported value for billing provider: {value}")


class Granularity(str, Enum):
    """Snapshot granularities, finest first."""

    HOURLY = "Hourly"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    YEARLY = "Yearly"
