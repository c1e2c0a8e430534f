"""
Per-provider logical connection pool.

Connections are bookkeeping slots rather than sockets: they bound how many
calls may be in flight against one provider and track per-slot error counts so
misbehaving slots are evicted.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from ai_orchestration.config.settings import PoolConfig
from ai_orchestration.exceptions import ConnectionTimeoutError
from ai_orchestration.telemetry.metrics import MetricsCollector

logger = structlog.get_logger(__name__)


@dataclass
class PooledConnection:
    """One logical connection slot."""

    provider: str
    last_used: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    in_use: bool = False
    request_count: int = 0
    error_count: int = 0


@dataclass
class PoolStats:
    total: int
    in_use: int
    available: int
    total_requests: int
    total_errors: int


class ConnectionPool:
    """Bounded per-provider connection slots with idle expiry and error eviction."""

    def __init__(
        self,
        config: Optional[PoolConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PoolConfig()
        self.metrics = metrics
        self._clock = clock
        self._pools: Dict[str, List[PooledConnection]] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def _is_stale(self, connection: PooledConnection, now: float) -> bool:
        return not connection.in_use and now - connection.last_used > self.config.idle_timeout

    def _try_acquire(self, provider: str) -> Optional[PooledConnection]:
        now = self._clock()
        pool = self._pools.setdefault(provider, [])

        # Expired slots are dropped before they can be handed out
        for connection in [c for c in pool if self._is_stale(c, now)]:
            self._evict(connection, "idle")

        for connection in pool:
            if not connection.in_use:
                return self._checkout(connection, now)

        if len(pool) < self.config.max_connections_per_provider:
            connection = PooledConnection(provider=provider, last_used=now)
            pool.append(connection)
            logger.debug("Connection created", provider=provider, connection_id=connection.id, total=len(pool))
            return self._checkout(connection, now)

        return None

    def _checkout(self, connection: PooledConnection, now: float) -> PooledConnection:
        connection.in_use = True
        connection.last_used = now
        connection.request_count += 1
        self._record(connection.provider)
        return connection

    async def acquire(self, provider: str) -> PooledConnection:
        """Hand out a free slot, creating one below the cap or polling until one frees.

        Raises:
            ConnectionTimeoutError: no slot became available within ``wait_timeout``.
        """
        connection = self._try_acquire(provider)
        if connection is not None:
            return connection

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.wait_timeout
        logger.debug("Connection pool exhausted, waiting", provider=provider)

        while loop.time() < deadline:
            await asyncio.sleep(self.config.poll_interval)
            connection = self._try_acquire(provider)
            if connection is not None:
                return connection

        logger.warning("Connection wait timed out", provider=provider, timeout=self.config.wait_timeout)
        raise ConnectionTimeoutError(provider, self.config.wait_timeout)

    def release(self, connection_id: str, had_error: bool = False):
        """Return a slot; slots with more than ``max_errors`` failures are evicted."""
        for provider, pool in self._pools.items():
            for connection in pool:
                if connection.id != connection_id:
                    continue
                connection.in_use = False
                connection.last_used = self._clock()
                if had_error:
                    connection.error_count += 1
                    if connection.error_count > self.config.max_errors:
                        self._evict(connection, "errors")
                        return
                self._record(provider)
                return

        logger.warning("Release of unknown connection ignored", connection_id=connection_id)

    def _evict(self, connection: PooledConnection, reason: str):
        pool = self._pools.get(connection.provider, [])
        if connection in pool:
            pool.remove(connection)
        logger.info(
            "Connection evicted",
            provider=connection.provider,
            connection_id=connection.id,
            reason=reason,
            error_count=connection.error_count,
        )
        if self.metrics:
            self.metrics.record_eviction(connection.provider, reason)
        self._record(connection.provider)

    def _record(self, provider: str):
        if self.metrics:
            pool = self._pools.get(provider, [])
            in_use = sum(1 for c in pool if c.in_use)
            self.metrics.record_pool(provider, in_use, len(pool) - in_use)

    def sweep(self) -> int:
        """Remove free slots idle beyond ``idle_timeout``; returns how many went."""
        now = self._clock()
        removed = 0
        for pool in list(self._pools.values()):
            for connection in [c for c in pool if self._is_stale(c, now)]:
                self._evict(connection, "idle")
                removed += 1
        return removed

    async def _sweep_loop(self):
        while True:
            try:
                await asyncio.sleep(self.config.health_check_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Connection sweep failed", error=str(e))

    async def start(self):
        """Start the periodic idle sweep."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info("Connection pool sweep started", interval=self.config.health_check_interval)

    async def stop(self):
        """Stop the periodic idle sweep."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
            logger.info("Connection pool sweep stopped")

    @asynccontextmanager
    async def connection(self, provider: str) -> AsyncIterator[PooledConnection]:
        """Acquire a slot for the duration of the block."""
        connection = await self.acquire(provider)
        had_error = False
        try:
            yield connection
        except Exception:
            had_error = True
            raise
        finally:
            self.release(connection.id, had_error=had_error)

    def connections(self, provider: str) -> List[PooledConnection]:
        return list(self._pools.get(provider, []))

    def stats(self) -> Dict[str, PoolStats]:
        result = {}
        for provider, pool in self._pools.items():
            in_use = sum(1 for c in pool if c.in_use)
            result[provider] = PoolStats(
                total=len(pool),
                in_use=in_use,
                available=len(pool) - in_use,
                total_requests=sum(c.request_count for c in pool),
                total_errors=sum(c.error_count for c in pool),
            )
        return result
