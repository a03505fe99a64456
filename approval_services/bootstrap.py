"""
approval_services.bootstrap -- Production wiring of the workflow engine.

``build_engine()`` is the single entrypoint that turns configuration into
a ready ``WorkflowEngine``: it compiles the transition table, opens the
database, and assembles the dispatcher and its channels.  Tests build
their engines by hand with the same pieces.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from approval_config import get_active_config, get_engine_settings
from approval_config.schema import EngineSettings
from approval_kernel.db.engine import Database
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import configure_logging, get_logger
from approval_services.identity import StaticDirectory
from approval_services.notification_dispatcher import (
    DeliveryChannel,
    InAppDeliveryChannel,
    LoggingDeliveryChannel,
    NotificationDispatcher,
)
from approval_services.workflow_engine import WorkflowEngine

logger = get_logger("services.bootstrap")


def build_engine(
    *,
    directory: StaticDirectory,
    settings: EngineSettings | None = None,
    config_dir: Path | None = None,
    database: Database | None = None,
    channels: Sequence[DeliveryChannel] | None = None,
    clock: Clock | None = None,
    create_tables: bool = True,
) -> WorkflowEngine:
    """Build a WorkflowEngine from config.

    The caller owns the result: ``close()`` drains asynchronous
    notifications and disposes of the database pool.

    Args:
        directory: identity provider and user directory (one object here;
            any pair of implementations can be wired by hand).
        settings: deployment settings; read from ``engine.yaml`` and the
            environment when omitted.
        config_dir: optional path to a config set directory.
        database: an existing Database; built from ``settings`` otherwise.
        channels: delivery channels; defaults to in-app plus log.
        clock: optional clock; default SystemClock.
        create_tables: create the schema if missing.
    """
    settings = settings or get_engine_settings(config_dir)
    configure_logging(level=settings.log_level)
    clock = clock or SystemClock()

    table = get_active_config(config_dir)
    if database is None:
        database = Database.from_url(settings.database_url, echo=settings.echo)
    if create_tables:
        database.create_tables()

    if channels is None:
        channels = (InAppDeliveryChannel(database, clock), LoggingDeliveryChannel())
    executor = (
        ThreadPoolExecutor(
            max_workers=settings.notification_workers,
            thread_name_prefix="approval-notify",
        )
        if settings.async_notifications
        else None
    )
    dispatcher = NotificationDispatcher(table, directory, channels, executor=executor)

    logger.info(
        "engine_built",
        extra={
            "checksum": table.checksum,
            "dialect": database.dialect,
            "channels": [getattr(c, "name", type(c).__name__) for c in channels],
            "async_notifications": settings.async_notifications,
        },
    )
    return WorkflowEngine(database, table, directory, dispatcher, clock)
