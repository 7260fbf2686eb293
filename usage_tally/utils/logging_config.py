"""Logging setup: console output plus optional CloudWatch shipping."""

import logging
import sys
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CloudWatchHandler(logging.Handler):
    """Logging handler that sends records to AWS CloudWatch Logs."""

    def __init__(self, log_group: str, log_stream: str, region: str = "us-east-1", client=None):
        """
        Initialize the CloudWatch handler.

        Args:
            log_group: CloudWatch log group name
            log_stream: CloudWatch log stream name
            region: AWS region for CloudWatch
            client: Optional pre-built ``logs`` client
        """
        super().__init__()
        self.log_group = log_group
        self.log_stream = log_stream
        self.region = region
        self.client = client or boto3.client("logs", region_name=region)
        self._ensure_log_group_and_stream()

    def _ensure_log_group_and_stream(self) -> None:
        """Create the log group and stream unless they already exist."""
        for create, kwargs in (
            (self.client.create_log_group, {"logGroupName": self.log_group}),
            (
                self.client.create_log_stream,
                {"logGroupName": self.log_group, "logStreamName": self.log_stream},
            ),
        ):
            try:
                create(**kwargs)
            except ClientError as e:
                if e.response["Error"]["Code"] != "ResourceAlreadyExistsException":
                    raise

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.client.put_log_events(
                logGroupName=self.log_group,
                logStreamName=self.log_stream,
                logEvents=[
                    {"message": self.format(record), "timestamp": int(record.created * 1000)}
                ],
            )
        except (ClientError, BotoCoreError) as e:
            # A logging handler must never raise into the caller
            print(f"Failed to send log to CloudWatch: {e}", file=sys.stderr)


def configure_logging(
    level: str = "INFO",
    cloudwatch_enabled: bool = False,
    log_group: str = "/usage/tally-engine",
    log_stream: Optional[str] = None,
    region: str = "us-east-1",
) -> Optional[CloudWatchHandler]:
    """
    Configure root logging for the engine.

    Args:
        level: Root log level name
        cloudwatch_enabled: Also ship records to CloudWatch Logs
        log_group: CloudWatch log group name
        log_stream: CloudWatch log stream name; defaults to a dated ``tally-engine`` stream
        region: AWS region for CloudWatch

    Returns:
        The CloudWatch handler when one was installed, otherwise None
    """
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    if not cloudwatch_enabled:
        return None

    stream = log_stream or f"tally-engine-{datetime.now(timezone.utc):%Y-%m-%d}"
    try:
        handler = CloudWatchHandler(log_group=log_group, log_stream=stream, region=region)
    except (ClientError, BotoCoreError) as e:
        print(f"Failed to configure CloudWatch logging: {e}", file=sys.stderr)
        return None

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    logging.getLogger(__name__).info(
        f"CloudWatch logging configured: group={log_group}, stream={stream}"
    )
    return handler
