"""
Browser Pool Management.

This module manages a bounded pool of headless browser instances used by the
rendering fallback. Each instance moves through

    created -> idle <-> leased -> destroyed

Instances are validated (still connected, not too old) every time they are
leased, idle instances are evicted after a timeout, and every instance carries
a hard self-destruct timer independent of pool bookkeeping. Nothing is kept
warm: the pool starts empty and creates instances on demand.
"""

import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Optional, Sequence, TypeVar

from sitecrawl.constants import (
    BROWSER_LAUNCH_ARGS,
    BROWSER_MAX_AGE_SECONDS,
    BROWSER_MAX_LIFETIME_SECONDS,
    BROWSER_POOL_ACQUIRE_TIMEOUT_SECONDS,
    BROWSER_POOL_DRAIN_TIMEOUT_SECONDS,
    BROWSER_POOL_EVICTION_INTERVAL_SECONDS,
    BROWSER_POOL_IDLE_TIMEOUT_SECONDS,
    BROWSER_POOL_MAX_SIZE,
    BROWSER_POOL_MIN_SIZE,
    RENDER_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Async callable: launch args -> browser instance
Launcher = Callable[[list[str]], Awaitable[Any]]


class PoolAcquireTimeout(Exception):
    """Raised when no browser instance became available within the acquire timeout."""


class PoolClosedError(RuntimeError):
    """Raised when leasing from a pool that is not started or is shutting down."""


class BrowserState(Enum):
    """Lifecycle state of a pooled browser instance."""
    CREATED = "created"
    IDLE = "idle"
    LEASED = "leased"
    DESTROYED = "destroyed"


class BrowserHealth(Enum):
    """Outcome of validating an instance."""
    HEALTHY = "healthy"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"


@dataclass
class BrowserEntry:
    """A pooled browser instance and its bookkeeping."""
    entry_id: int
    instance: Any
    created_at: float  # time.monotonic()
    state: BrowserState = BrowserState.CREATED
    last_used: float | None = None
    leases: int = 0
    destroy_timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def age(self, now: float | None = None) -> float:
        """Seconds since the instance was created."""
        return (now if now is not None else time.monotonic()) - self.created_at

    def idle_for(self, now: float | None = None) -> float:
        """Seconds since the instance was last released."""
        reference = self.last_used if self.last_used is not None else self.created_at
        return (now if now is not None else time.monotonic()) - reference


@dataclass
class PoolStatus:
    """Current status of the browser pool."""
    size: int
    available: int
    borrowed: int
    pending: int
    max: int
    min: int
    total_created: int
    total_destroyed: int
    total_leases: int
    uptime_seconds: float


class BrowserPool:
    """
    Bounded pool of headless browser instances.

    Features:
    - Hard cap on concurrently created instances (slots are reserved before launch)
    - Validation on every lease; stale or disconnected instances are replaced
    - Idle eviction and a per-instance self-destruct timer
    - Acquire timeout that fails loudly instead of blocking forever
    - Leases returned in ``finally`` via ``lease()`` / ``with_instance()``
    """

    def __init__(
        self,
        max_size: int = BROWSER_POOL_MAX_SIZE,
        min_size: int = BROWSER_POOL_MIN_SIZE,
        acquire_timeout: float = BROWSER_POOL_ACQUIRE_TIMEOUT_SECONDS,
        idle_timeout: float = BROWSER_POOL_IDLE_TIMEOUT_SECONDS,
        eviction_interval: float = BROWSER_POOL_EVICTION_INTERVAL_SECONDS,
        max_age: float = BROWSER_MAX_AGE_SECONDS,
        max_lifetime: float = BROWSER_MAX_LIFETIME_SECONDS,
        drain_timeout: float = BROWSER_POOL_DRAIN_TIMEOUT_SECONDS,
        headless: bool = True,
        launch_args: Sequence[str] = BROWSER_LAUNCH_ARGS,
        executable_path: Optional[str] = None,
        launcher: Optional[Launcher] = None,
    ):
        """
        Initialize browser pool.

        Args:
            max_size: Maximum number of concurrently created instances
            min_size: Instances eviction never goes below
            acquire_timeout: Seconds a lease may wait for capacity
            idle_timeout: Idle seconds after which an instance is evicted
            eviction_interval: Seconds between eviction sweeps
            max_age: Instances older than this fail validation
            max_lifetime: Self-destruct timer attached to each instance
            drain_timeout: Seconds close() waits for outstanding leases
            headless: Run browsers in headless mode
            launch_args: Browser command-line arguments
            executable_path: Browser binary (Playwright's bundled Chromium when None)
            launcher: Optional async factory ``launcher(args) -> instance``
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")

        self.max_size = max_size
        self.min_size = min_size
        self.acquire_timeout = acquire_timeout
        self.idle_timeout = idle_timeout
        self.eviction_interval = eviction_interval
        self.max_age = max_age
        self.max_lifetime = max_lifetime
        self.drain_timeout = drain_timeout
        self.headless = headless
        self.launch_args = list(launch_args)
        self.executable_path = executable_path
        self._launcher = launcher

        self._playwright = None
        self._playwright_lock = asyncio.Lock()

        self._idle: Deque[BrowserEntry] = deque()
        self._borrowed: dict[int, BrowserEntry] = {}
        self._cond = asyncio.Condition()
        self._size = 0  # created + being created
        self._pending = 0
        self._next_entry_id = 0
        self._eviction_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

        self._started = False
        self._closing = False
        self._start_time: float | None = None
        self._total_created = 0
        self._total_destroyed = 0
        self._total_leases = 0

    async def start(self) -> None:
        """
        Start the pool.

        No instances are created here; the eviction sweep is scheduled.
        """
        if self._started:
            return

        self._started = True
        self._closing = False
        self._start_time = time.monotonic()
        self._eviction_task = asyncio.create_task(self._eviction_loop())
        logger.info(
            f"Browser pool started (max {self.max_size}, min {self.min_size})"
        )

    async def close(self) -> None:
        """
        Shut the pool down.

        Waits up to ``drain_timeout`` for leased instances to come back, then
        destroys everything that is left.
        """
        if not self._started:
            return

        logger.info("Draining browser pool...")
        self._closing = True

        if self._eviction_task:
            self._eviction_task.cancel()
            try:
                await self._eviction_task
            except asyncio.CancelledError:
                pass
            self._eviction_task = None

        async with self._cond:
            self._cond.notify_all()  # Waiting leases fail with PoolClosedError
            if self._borrowed:
                try:
                    await asyncio.wait_for(
                        self._cond.wait_for(lambda: not self._borrowed),
                        timeout=self.drain_timeout,
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        f"{len(self._borrowed)} browser(s) still leased after "
                        f"{self.drain_timeout}s, destroying anyway"
                    )

            remaining = list(self._idle) + list(self._borrowed.values())
            self._idle.clear()
            self._borrowed.clear()

        for entry in remaining:
            await self._retire(entry)

        for task in list(self._background):
            task.cancel()

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")
            self._playwright = None

        self._started = False
        logger.info("Browser pool closed")

    async def __aenter__(self) -> "BrowserPool":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Factory: create / validate / destroy
    # ------------------------------------------------------------------

    async def _launch(self) -> Any:
        """Launch one browser process."""
        if self._launcher is not None:
            return await self._launcher(list(self.launch_args))

        async with self._playwright_lock:
            if self._playwright is None:
                try:
                    from playwright.async_api import async_playwright
                except ImportError:
                    raise ImportError(
                        "playwright package not installed. "
                        "Install with: pip install playwright && playwright install chromium"
                    )
                self._playwright = await async_playwright().start()

        launch_options: dict[str, Any] = {
            "headless": self.headless,
            "args": self.launch_args,
        }
        if self.executable_path:
            launch_options["executable_path"] = self.executable_path

        return await self._playwright.chromium.launch(**launch_options)

    async def _create(self) -> BrowserEntry:
        """Launch an instance and attach its self-destruct timer."""
        logger.debug("Creating new browser instance...")
        try:
            instance = await self._launch()
        except Exception as e:
            logger.error(f"Failed to create browser: {e}")
            raise

        entry = BrowserEntry(
            entry_id=self._next_entry_id,
            instance=instance,
            created_at=time.monotonic(),
        )
        self._next_entry_id += 1
        self._total_created += 1

        loop = asyncio.get_running_loop()
        entry.destroy_timer = loop.call_later(
            self.max_lifetime, self._on_lifetime_expired, entry
        )

        logger.debug(f"Browser instance {entry.entry_id} created")
        return entry

    def validate(self, entry: BrowserEntry) -> BrowserHealth:
        """
        Check an instance before it is leased.

        Returns:
            HEALTHY, or the reason the instance must be destroyed
        """
        try:
            connected = bool(entry.instance.is_connected())
        except Exception as e:
            logger.warning(f"Browser {entry.entry_id} validation error: {e}")
            connected = False

        if not connected:
            return BrowserHealth.DISCONNECTED

        if entry.age() > self.max_age:
            return BrowserHealth.EXPIRED

        return BrowserHealth.HEALTHY

    async def _destroy(self, entry: BrowserEntry) -> None:
        """Cancel the timer and close the instance; failures are logged only."""
        if entry.state is BrowserState.DESTROYED:
            return

        entry.state = BrowserState.DESTROYED
        if entry.destroy_timer is not None:
            entry.destroy_timer.cancel()
            entry.destroy_timer = None

        try:
            await asyncio.wait_for(entry.instance.close(), timeout=self.drain_timeout)
            logger.debug(f"Browser instance {entry.entry_id} destroyed")
        except Exception as e:
            logger.error(f"Failed to destroy browser {entry.entry_id}: {e}")
        finally:
            self._total_destroyed += 1

    def _on_lifetime_expired(self, entry: BrowserEntry) -> None:
        """Last-resort leak guard: force the process closed."""
        entry.destroy_timer = None
        logger.warning(f"Browser {entry.entry_id} exceeded max lifetime - forcing close")
        task = asyncio.ensure_future(self._force_close(entry))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    async def _force_close(entry: BrowserEntry) -> None:
        try:
            await entry.instance.close()
        except Exception as e:
            logger.debug(f"Forced close of browser {entry.entry_id} failed: {e}")

    # ------------------------------------------------------------------
    # Leasing
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if not self._started or self._closing:
            raise PoolClosedError("Browser pool not started or closing. Call start() first.")

    def _take_idle_locked(self, stale: list[BrowserEntry]) -> BrowserEntry | None:
        """Pop the first idle instance that validates; invalid ones go to ``stale``.

        Stale entries keep their slot until ``_retire`` has closed them.
        """
        while self._idle:
            entry = self._idle.popleft()
            health = self.validate(entry)
            if health is BrowserHealth.HEALTHY:
                return entry

            logger.info(
                f"Browser {entry.entry_id} failed validation ({health.value}, "
                f"age {entry.age():.0f}s) - replacing"
            )
            stale.append(entry)
        return None

    def _mark_leased(self, entry: BrowserEntry) -> None:
        entry.state = BrowserState.LEASED
        entry.leases += 1
        self._borrowed[entry.entry_id] = entry
        self._total_leases += 1

    async def _retire(self, entry: BrowserEntry) -> None:
        """Destroy an instance, then give its slot back to waiting leases."""
        try:
            await self._destroy(entry)
        finally:
            async with self._cond:
                self._size -= 1
                self._cond.notify_all()

    async def acquire(self) -> BrowserEntry:
        """
        Lease an instance, creating one if capacity allows.

        Prefer ``lease()`` or ``with_instance()``, which always release.

        Raises:
            PoolAcquireTimeout: No capacity within ``acquire_timeout``
            PoolClosedError: Pool not started or closing
        """
        self._ensure_open()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.acquire_timeout

        self._pending += 1
        try:
            while True:
                stale: list[BrowserEntry] = []
                entry = None
                reserved = False
                try:
                    async with self._cond:
                        while True:
                            self._ensure_open()

                            entry = self._take_idle_locked(stale)
                            if entry is not None:
                                self._mark_leased(entry)
                                break

                            if stale:
                                break  # Retire them before their slots are reused

                            if self._size < self.max_size:
                                self._size += 1  # Reserve the slot before launching
                                reserved = True
                                break

                            remaining = deadline - loop.time()
                            if remaining <= 0:
                                raise PoolAcquireTimeout(
                                    f"No browser available within {self.acquire_timeout}s"
                                )
                            try:
                                await asyncio.wait_for(self._cond.wait(), timeout=remaining)
                            except asyncio.TimeoutError:
                                raise PoolAcquireTimeout(
                                    f"No browser available within {self.acquire_timeout}s"
                                ) from None
                finally:
                    for old in stale:
                        await self._retire(old)

                if entry is not None:
                    return entry
                if reserved:
                    break
        finally:
            self._pending -= 1

        try:
            entry = await self._create()
        except BaseException:
            async with self._cond:
                self._size -= 1
                self._cond.notify()
            raise

        async with self._cond:
            closing = self._closing
            if not closing:
                self._mark_leased(entry)

        if closing:
            await self._retire(entry)
            raise PoolClosedError("Browser pool closed while launching")

        return entry

    async def release(self, entry: BrowserEntry) -> None:
        """Return a leased instance to the idle set (or destroy it when closing)."""
        destroy = False
        async with self._cond:
            if self._borrowed.pop(entry.entry_id, None) is None:
                return  # Already reclaimed by close()

            if self._closing or entry.state is BrowserState.DESTROYED:
                destroy = True
            else:
                entry.state = BrowserState.IDLE
                entry.last_used = time.monotonic()
                self._idle.append(entry)

            self._cond.notify_all()

        if destroy:
            await self._retire(entry)

    @asynccontextmanager
    async def lease(self):
        """
        Lease a browser instance for the duration of the block.

        Usage:
            async with pool.lease() as browser:
                page = await browser.new_page()

        Yields:
            The browser instance
        """
        entry = await self.acquire()
        try:
            yield entry.instance
        finally:
            await self.release(entry)

    async def with_instance(self, fn: Callable[[Any], Awaitable[T]]) -> T:
        """
        Run ``fn(browser)`` on a leased instance; the lease is always returned.

        Args:
            fn: Async callable receiving the browser instance

        Returns:
            Whatever ``fn`` returns
        """
        start = time.monotonic()
        async with self.lease() as instance:
            status = self.get_status()
            logger.debug(
                f"Browser acquired from pool ({status.size} in pool, "
                f"{status.available} available)"
            )
            try:
                result = await fn(instance)
            except Exception as e:
                logger.warning(
                    f"Browser operation failed after {time.monotonic() - start:.2f}s: {e}"
                )
                raise
            logger.debug(f"Browser operation completed in {time.monotonic() - start:.2f}s")
            return result

    async def with_page(
        self,
        fn: Callable[[Any], Awaitable[T]],
        timeout: float = RENDER_TIMEOUT_SECONDS,
        **page_options: Any,
    ) -> T:
        """
        Run ``fn(page)`` on a fresh page of a leased instance; the page is always closed.

        Args:
            fn: Async callable receiving the page
            timeout: Default navigation/operation timeout for the page (seconds)
            **page_options: Passed to ``new_page()`` (user_agent, viewport, ...)
        """
        async def run(instance: Any) -> T:
            page = await instance.new_page(**page_options)
            page.set_default_navigation_timeout(timeout * 1000)  # Playwright uses milliseconds
            page.set_default_timeout(timeout * 1000)
            try:
                return await fn(page)
            finally:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug(f"Error closing page: {e}")

        return await self.with_instance(run)

    # ------------------------------------------------------------------
    # Eviction / status
    # ------------------------------------------------------------------

    async def _eviction_loop(self) -> None:
        while True:
            await asyncio.sleep(self.eviction_interval)
            try:
                await self.evict_idle()
            except Exception as e:
                logger.warning(f"Browser eviction sweep failed: {e}")

    async def evict_idle(self) -> int:
        """
        Destroy idle instances past ``idle_timeout`` or failing validation.

        Returns:
            Number of instances evicted
        """
        now = time.monotonic()
        evicted: list[BrowserEntry] = []

        async with self._cond:
            keep: Deque[BrowserEntry] = deque()
            for entry in self._idle:
                expired = (
                    entry.idle_for(now) >= self.idle_timeout
                    or self.validate(entry) is not BrowserHealth.HEALTHY
                )
                if expired and self._size - len(evicted) > self.min_size:
                    evicted.append(entry)
                else:
                    keep.append(entry)
            self._idle = keep

        for entry in evicted:
            await self._retire(entry)

        if evicted:
            logger.debug(f"Evicted {len(evicted)} idle browser(s)")
        return len(evicted)

    def get_status(self) -> PoolStatus:
        """Get current pool status."""
        uptime = 0.0
        if self._start_time is not None:
            uptime = time.monotonic() - self._start_time

        return PoolStatus(
            size=self._size,
            available=len(self._idle),
            borrowed=len(self._borrowed),
            pending=self._pending,
            max=self.max_size,
            min=self.min_size,
            total_created=self._total_created,
            total_destroyed=self._total_destroyed,
            total_leases=self._total_leases,
            uptime_seconds=uptime,
        )

    @property
    def is_started(self) -> bool:
        """Whether pool has been started."""
        return self._started
