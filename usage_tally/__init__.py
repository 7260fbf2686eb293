"""Usage tally engine: hourly metering, snapshot rollups and billing production."""

__version__ = "0.1.0"
