# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Binlog Relay Core - Listener runtime orchestrating source, router and checkpoint.

The runtime resumes from the last durable position when one exists and
from the source's current head otherwise. Rows at or after the durable
position are replayed on resume, so delivery is at-least-once.

Asynchronous failures (row dispatch, checkpoint writes) never stop the
stream. They are offered to a single-slot error queue; when the slot is
already taken the new error is dropped:

    listener = create_listener(config)
    listener.register("shop.products", Product, ProductHandler())
    threading.Thread(target=drain, args=(listener.errors,), daemon=True).start()
    listener.run()
"""

import asyncio
import queue
import threading
from enum import Enum
from typing import Awaitable, Callable

import structlog

from binlog_relay.builder import make_registration
from binlog_relay.cdc import ReplicationSource
from binlog_relay.config import RelayConfig
from binlog_relay.env import mask_password
from binlog_relay.errors import explain_register_after_start
from binlog_relay.exceptions import RegistrationError, RelayError, ReplicationError
from binlog_relay.mapping import ColumnBindingCache, RecordMapper, RowValueCoercer
from binlog_relay.models import RowChangeRecord, StreamPosition, TableIdentity
from binlog_relay.position import PositionStore
from binlog_relay.registry import HandlerRegistration, HandlerRegistry, TableHandler
from binlog_relay.router import EventRouter

logger = structlog.get_logger()


class RuntimeState(str, Enum):
    """Lifecycle state of a ListenerRuntime."""

    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class ListenerRuntime:
    """Owns the handler registry, the position store and the error queue."""

    def __init__(
        self,
        source: ReplicationSource,
        position_store: PositionStore,
        *,
        registry: HandlerRegistry | None = None,
        column_tag: str = "db",
        strict_numeric: bool = False,
    ) -> None:
        self.source = source
        self.position_store = position_store
        self.column_tag = column_tag
        self.mapper = RecordMapper(ColumnBindingCache(), RowValueCoercer(strict_numeric=strict_numeric))
        self.errors: "queue.Queue[Exception]" = queue.Queue(maxsize=1)
        self.state = RuntimeState.CREATED
        self.start_position: StreamPosition | None = None
        self._checkpoint = StreamPosition.empty()
        self._pending: dict[TableIdentity, HandlerRegistration] = {}
        if registry is not None:
            for registration in registry:
                self._pending[registration.identity] = registration
        self._registry: HandlerRegistry | None = None
        self._router: EventRouter | None = None
        self._state_lock = threading.Lock()

    @property
    def registry(self) -> HandlerRegistry:
        """Registry in effect; frozen once the runtime is running."""
        if self._registry is not None:
            return self._registry
        return HandlerRegistry(self._pending)

    def register(
        self,
        table: TableIdentity | str,
        record_type: type,
        handler: TableHandler,
    ) -> None:
        """
        Register a handler for a table before the stream starts.

        Args:
            table: TableIdentity or "schema.table" key
            record_type: Destination dataclass type
            handler: Callbacks receiving typed records

        Raises:
            RegistrationError: If the runtime has already started
        """
        with self._state_lock:
            if self.state != RuntimeState.CREATED:
                key = table.key if isinstance(table, TableIdentity) else table
                raise RegistrationError(explain_register_after_start(key))
            registration = make_registration(table, record_type, handler, self.column_tag)
            self._pending[registration.identity] = registration
        logger.info("handler_registered", table=registration.identity.key)

    def run(self) -> None:
        """
        Start streaming and block until the source stops.

        Raises:
            RegistrationError: If the runtime was already started
            ReplicationError: If the source fails for good
        """
        with self._state_lock:
            if self.state != RuntimeState.CREATED:
                raise RegistrationError(f"Listener already {self.state.value}")
            self._registry = HandlerRegistry(self._pending)
            self._router = EventRouter(self._registry, self.mapper)
            self.state = RuntimeState.RUNNING

        head = StreamPosition.empty()
        try:
            head = self.source.get_current_position()
        except Exception as e:
            self.report_error(e)

        durable = StreamPosition.empty()
        try:
            durable = self.position_store.get_latest_position()
        except Exception as e:
            self.report_error(e)

        self.start_position = head if durable.is_empty else durable
        self._checkpoint = self.start_position
        logger.info(
            "listener_started",
            tables=[identity.key for identity in self._registry.identities],
            resume=not durable.is_empty,
            file=self.start_position.name,
            pos=self.start_position.pos,
        )

        try:
            self.source.run_from(self.start_position, self)
        except ReplicationError:
            logger.error("listener_failed", file=self.start_position.name)
            raise
        except Exception as e:
            logger.error("listener_failed", error=str(e))
            raise ReplicationError(f"Replication source failed: {e}") from e
        finally:
            self.state = RuntimeState.STOPPED

        logger.info("listener_stopped")

    def stop(self) -> None:
        """Ask the source to stop; run() returns once it has."""
        self.source.stop()

    def report_error(self, error: Exception) -> None:
        """Offer an error to the error queue, dropping it if the slot is taken."""
        try:
            self.errors.put_nowait(error)
        except queue.Full:
            logger.debug("error_dropped", error=str(error))

    # RowEventSink callbacks

    def on_row_change(self, record: RowChangeRecord) -> None:
        if self._router is None:
            raise RelayError(
                "Listener has not started; call run() before delivering rows",
                details={"table": record.table.identity.key, "state": self.state.value},
            )
        try:
            self._router.route(record)
        except RelayError as e:
            logger.warning(
                "row_dispatch_failed",
                table=record.table.identity.key,
                action=str(record.action),
                error=str(e),
            )
            self.report_error(e)

    def on_position_advance(self, position: StreamPosition) -> None:
        logger.debug("position_changed", file=position.name, pos=position.pos)
        self._store_position(position)

    def on_log_rotate(self, position: StreamPosition) -> None:
        logger.info("binlog_rotated", file=position.name, pos=position.pos)
        self._store_position(position)

    def _store_position(self, position: StreamPosition) -> None:
        # Checkpoints never move backwards
        if position < self._checkpoint:
            logger.warning(
                "position_regressed",
                file=position.name,
                pos=position.pos,
                checkpoint=str(self._checkpoint),
            )
            return
        try:
            self.position_store.update_position(position)
            self._checkpoint = position
        except Exception as e:
            logger.warning("position_update_failed", file=position.name, pos=position.pos, error=str(e))
            self.report_error(e)


def create_listener(
    config: RelayConfig,
    *,
    redis_client=None,
    source: ReplicationSource | None = None,
    position_store: PositionStore | None = None,
    registry: HandlerRegistry | None = None,
) -> ListenerRuntime:
    """
    Create a listener wired with default collaborators.

    Args:
        config: Relay configuration
        redis_client: Redis client for the default position store (optional)
        source: Replication source (default: MySQL binlog source from config)
        position_store: Position store (default: Redis at config.position_key)
        registry: Prebuilt handler registry (optional)

    Returns:
        ListenerRuntime in the CREATED state
    """
    if source is None:
        from binlog_relay.cdc import create_replication_source

        source = create_replication_source(config)

    if position_store is None:
        from binlog_relay.position import RedisPositionStore

        if redis_client is not None:
            position_store = RedisPositionStore(redis_client, config.position_key)
        else:
            position_store = RedisPositionStore.from_url(config.redis_url, config.position_key)
            logger.info(
                "position_store_configured",
                redis_url=mask_password(config.redis_url),
                key=config.position_key,
            )

    return ListenerRuntime(
        source,
        position_store,
        registry=registry,
        column_tag=config.column_tag,
        strict_numeric=config.strict_numeric,
    )


async def start_listener(runtime: ListenerRuntime) -> Callable[[], Awaitable[None]]:
    """
    Run a listener in a worker thread and return an async stop function.

    Args:
        runtime: Listener in the CREATED state

    Returns:
        Async cleanup function that stops the stream and waits for it
    """
    task = asyncio.create_task(asyncio.to_thread(runtime.run))

    async def stop() -> None:
        runtime.stop()
        try:
            await task
        except ReplicationError as e:
            logger.warning("listener_stop_failed", error=str(e))
        logger.info("listener_task_stopped")

    return stop
