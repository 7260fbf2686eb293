# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Service container for dependency wiring and lifecycle management.

The container builds the stores, the tag profile, the Redis-backed cache
and transport, and the tally and billing services from one ``Settings``
object. It is entry-point agnostic: a worker loop, a CLI or a test can
own one.
"""

import logging
from typing import Optional

from .clients.cache import RedisCache
from .clients.database import SqliteDatabase
from .clients.event_store import EventStore
from .clients.inventory_store import AccountServiceInventoryRepository
from .clients.snapshot_store import TallySnapshotRepository
from .clients.transport import MessageTransport, RedisStreamTransport
from .config import Settings, settings as get_default_settings
from .services.billing_producer import BillingProducer, RetryPolicy
from .services.metric_usage_collector import MetricUsageCollector
from .services.snapshot_roller import SnapshotRoller
from .services.tag_profile_service import TagProfileService
from .services.tally_controller import TallyController
from .services.tally_summary_consumer import TallySummaryMessageConsumer
from .utils.clock import ApplicationClock
from .utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Wires together all services.

    Usage::

        container = ServiceContainer()
        await container.initialize()
        summary = await container.tally_controller.produce_snapshots(account, service_type, rng)
        await container.shutdown()

    Tests pass their own settings, clock and transport::

        container = ServiceContainer(settings=s, clock=clock, transport=fake_transport)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[ApplicationClock] = None,
        transport: Optional[MessageTransport] = None,
    ) -> None:
        self._settings: Settings = settings or get_default_settings()
        self._clock = clock or ApplicationClock()
        self._transport: Optional[MessageTransport] = transport
        self._owns_transport = transport is None
        self._initialized = False

        self._database: Optional[SqliteDatabase] = None
        self._event_store: Optional[EventStore] = None
        self._inventory_repository: Optional[AccountServiceInventoryRepository] = None
        self._snapshot_repository: Optional[TallySnapshotRepository] = None
        self._tag_profile_service: Optional[TagProfileService] = None
        self._redis_cache: Optional[RedisCache] = None
        self._collector: Optional[MetricUsageCollector] = None
        self._roller: Optional[SnapshotRoller] = None
        self._tally_controller: Optional[TallyController] = None
        self._billing_producer: Optional[BillingProducer] = None
        self._summary_consumer: Optional[TallySummaryMessageConsumer] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Initialize all services in dependency order.

        The Redis cache is optional: when it cannot be reached the billing
        producer falls back to in-process de-duplication. Storage and tag
        profile failures propagate.
        """
        if self._initialized:
            logger.warning("ServiceContainer.initialize() called more than once")
            return

        s = self._settings
        configure_logging(
            level=s.log_level,
            cloudwatch_enabled=s.cloudwatch_enabled,
            log_group=s.cloudwatch_log_group,
            log_stream=s.cloudwatch_log_stream,
            region=s.aws_region,
        )
        logger.info(f"ServiceContainer: initializing services (environment={s.environment})")

        # 1. Storage
        self._database = SqliteDatabase(s.database_path)
        self._event_store = EventStore(self._database)
        self._inventory_repository = AccountServiceInventoryRepository(self._database)
        self._snapshot_repository = TallySnapshotRepository(self._database)
        logger.info(f"ServiceContainer: stores initialized (db={s.database_path})")

        # 2. Tag profile
        self._tag_profile_service = TagProfileService(profile_path=s.tag_profile_path)
        self._tag_profile_service.load_profile()
        logger.info(f"ServiceContainer: tag profile loaded (path={s.tag_profile_path})")

        # 3. Redis cache
        self._redis_cache = await RedisCache.create(
            redis_url=s.redis_url, default_ttl=s.billing_dedupe_ttl
        )
        if not await self._redis_cache.is_connected():
            logger.warning("ServiceContainer: Redis unavailable, billing dedupe is process-local")

        # 4. Transport
        if self._transport is None:
            self._transport = RedisStreamTransport.from_url(s.redis_url)

        # 5. Tally pipeline
        self._collector = MetricUsageCollector(
            tag_profile=self._tag_profile_service,
            inventory_repository=self._inventory_repository,
            event_store=self._event_store,
            clock=self._clock,
        )
        self._roller = SnapshotRoller(self._snapshot_repository, self._clock)
        self._tally_controller = TallyController(
            collector=self._collector,
            roller=self._roller,
            transport=self._transport,
            summary_topic=s.tally_summary_topic,
        )

        # 6. Billing
        self._billing_producer = BillingProducer(
            transport=self._transport,
            topic=s.billable_usage_topic,
            retry_policy=RetryPolicy(
                max_attempts=s.billing_producer_max_attempts,
                initial_interval=s.billing_producer_back_off_initial_interval,
                multiplier=s.billing_producer_back_off_multiplier,
                max_interval=s.billing_producer_back_off_max_interval,
            ),
            cache=self._redis_cache,
            dedupe_ttl=s.billing_dedupe_ttl,
        )
        self._summary_consumer = TallySummaryMessageConsumer(
            billing_producer=self._billing_producer,
            transport=self._transport,
            topic=s.tally_summary_topic,
            concurrency=s.billing_consumer_concurrency,
        )

        self._initialized = True
        logger.info("ServiceContainer: all services initialized")

    async def shutdown(self) -> None:
        """Close connections and release resources."""
        logger.info("ServiceContainer: shutting down")
        if self._redis_cache:
            await self._redis_cache.close()
        if self._owns_transport and isinstance(self._transport, RedisStreamTransport):
            await self._transport.close()
            self._transport = None
        if self._database:
            self._database.close()
        self._initialized = False
        logger.info("ServiceContainer: shutdown complete")

    # ------------------------------------------------------------------
    # Accessor properties
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def clock(self) -> ApplicationClock:
        return self._clock

    @property
    def event_store(self) -> Optional[EventStore]:
        return self._event_store

    @property
    def inventory_repository(self) -> Optional[AccountServiceInventoryRepository]:
        return self._inventory_repository

    @property
    def snapshot_repository(self) -> Optional[TallySnapshotRepository]:
        return self._snapshot_repository

    @property
    def tag_profile_service(self) -> Optional[TagProfileService]:
        return self._tag_profile_service

    @property
    def redis_cache(self) -> Optional[RedisCache]:
        return self._redis_cache

    @property
    def transport(self) -> Optional[MessageTransport]:
        return self._transport

    @property
    def collector(self) -> Optional[MetricUsageCollector]:
        return self._collector

    @property
    def roller(self) -> Optional[SnapshotRoller]:
        return self._roller

    @property
    def tally_controller(self) -> Optional[TallyController]:
        return self._tally_controller

    @property
    def billing_producer(self) -> Optional[BillingProducer]:
        return self._billing_producer

    @property
    def summary_consumer(self) -> Optional[TallySummaryMessageConsumer]:
        return self._summary_consumer
