"""
Configuration cache.

Process-local store of configuration values pulled from the config service
and overwritten by its push channel.

Entries are immutable CacheEntry objects replaced with a single dict
assignment, so a reader sees either the old or the new entry. Values are
deep-copied on read. Known keys are validated into frozen pydantic models
before they are stored; a payload that fails validation never replaces a
good entry.
"""

import asyncio
import copy
import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError

from cpa_engine.config.constants import (
    CPA_LEVEL_AMOUNTS_KEY,
    CPA_VALIDATION_RULES_KEY,
    MLM_SETTINGS_KEY,
    SYSTEM_SETTINGS_KEY,
)
from cpa_engine.config.settings import settings
from cpa_engine.schemas.config import (
    DEFAULT_HIERARCHY_SETTINGS,
    DEFAULT_LEVEL_PAYOUT_TABLE,
    DEFAULT_SYSTEM_SETTINGS,
    DEFAULT_VALIDATION_RULE_SET,
    HierarchySettings,
    LevelPayoutTable,
    SystemSettings,
    ValidationRuleSet,
)
from cpa_engine.services.config_client import ConfigProviderClient
from cpa_engine.utils.exceptions import ConfigUnavailableError
from cpa_engine.utils.timeouts import backoff_delay

# Typed schema per known key
KEY_SCHEMAS: dict[str, type[BaseModel]] = {
    CPA_LEVEL_AMOUNTS_KEY: LevelPayoutTable,
    MLM_SETTINGS_KEY: HierarchySettings,
    CPA_VALIDATION_RULES_KEY: ValidationRuleSet,
    SYSTEM_SETTINGS_KEY: SystemSettings,
}

ChangeCallback = Callable[[str, Any], Any]


@dataclass(frozen=True)
class CacheEntry:
    """Cached value with its freshness horizon (monotonic seconds)."""

    value: Any
    fetched_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class ConfigCache:
    """
    Configuration cache with pull refresh and push overwrite.

    get() never raises: on a failed refresh it serves the last known value
    if there is one, otherwise the caller's default.
    """

    def __init__(
        self,
        client: ConfigProviderClient,
        ttl: float | None = None,
        enable_push: bool | None = None,
        reconnect_delay: float | None = None,
        max_backoff: float | None = None,
        max_reconnect_attempts: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize cache.

        Args:
            client: Config service client
            ttl: Freshness horizon in seconds
            enable_push: Run the push listener on start()
            reconnect_delay: Base delay of the reconnect backoff
            max_backoff: Cap of a single reconnect delay
            max_reconnect_attempts: Consecutive failures before giving up
            clock: Monotonic time source
        """
        self.client = client
        self.ttl = ttl if ttl is not None else settings.config_cache_ttl
        self.enable_push = (
            enable_push if enable_push is not None else settings.enable_config_push
        )
        self.reconnect_delay = (
            reconnect_delay
            if reconnect_delay is not None
            else settings.config_ws_reconnect_delay
        )
        self.max_backoff = (
            max_backoff if max_backoff is not None else settings.config_ws_max_backoff
        )
        self.max_reconnect_attempts = (
            max_reconnect_attempts
            if max_reconnect_attempts is not None
            else settings.config_ws_max_reconnect_attempts
        )
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._callbacks: list[ChangeCallback] = []
        self._push_task: asyncio.Task | None = None
        self._reconnect_attempts = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Returned when the value can't be obtained

        Returns:
            Copy of the cached value, a freshly fetched value, or default
        """
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock()):
            return copy.deepcopy(entry.value)

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another reader may have refreshed while we waited
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self._clock()):
                return copy.deepcopy(entry.value)

            try:
                raw = await self.client.fetch_value(key)
                value = self._coerce(key, raw)
            except (ConfigUnavailableError, ValidationError) as e:
                logger.warning(
                    f"Config refresh failed for {key}, serving "
                    f"{'stale value' if entry else 'default'}",
                    extra={"key": key, "error": str(e)},
                )
                if entry is not None:
                    return copy.deepcopy(entry.value)
                return default

            self._store(key, value)
            return copy.deepcopy(value)

    async def get_level_payout_table(self) -> LevelPayoutTable:
        return await self.get(CPA_LEVEL_AMOUNTS_KEY, DEFAULT_LEVEL_PAYOUT_TABLE)

    async def get_hierarchy_settings(self) -> HierarchySettings:
        return await self.get(MLM_SETTINGS_KEY, DEFAULT_HIERARCHY_SETTINGS)

    async def get_validation_rules(self) -> ValidationRuleSet:
        return await self.get(CPA_VALIDATION_RULES_KEY, DEFAULT_VALIDATION_RULE_SET)

    async def get_system_settings(self) -> SystemSettings:
        return await self.get(SYSTEM_SETTINGS_KEY, DEFAULT_SYSTEM_SETTINGS)

    def fetched_at(self, key: str) -> float | None:
        """Monotonic time of the last stored value for key."""
        entry = self._entries.get(key)
        return entry.fetched_at if entry else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _coerce(self, key: str, raw: Any) -> Any:
        schema = KEY_SCHEMAS.get(key)
        if schema is None:
            return copy.deepcopy(raw)
        return schema.model_validate(raw)

    def _store(self, key: str, value: Any) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value, fetched_at=now, expires_at=now + self.ttl
        )

    async def apply_push(self, key: str, raw: Any) -> None:
        """
        Overwrite an entry from a push message and notify callbacks.

        Invalid payloads are logged and dropped; the current entry stays.
        A notification without a value drops the entry so the next read pulls.
        """
        if raw is None:
            self.invalidate(key)
            logger.info("Config invalidated by push", extra={"key": key})
            return

        try:
            value = self._coerce(key, raw)
        except ValidationError as e:
            logger.warning(
                "Rejected invalid pushed config value",
                extra={"key": key, "error": str(e)},
            )
            return

        self._store(key, value)
        logger.info("Config updated by push", extra={"key": key})
        await self._notify(key, value)

    def on_change(self, callback: ChangeCallback) -> None:
        """Register a callback fired with (key, value) after a push update."""
        self._callbacks.append(callback)

    async def _notify(self, key: str, value: Any) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(key, copy.deepcopy(value))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Config change callback failed",
                    extra={"key": key, "callback": repr(callback), "error": str(e)},
                )

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or all entries when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the push listener in the background."""
        if not self.enable_push or self._push_task is not None:
            return
        self._push_task = asyncio.create_task(self._push_loop())

    async def stop(self) -> None:
        """Stop the push listener and close the client."""
        if self._push_task is not None:
            self._push_task.cancel()
            try:
                await self._push_task
            except asyncio.CancelledError:
                pass
            self._push_task = None
        await self.client.close()

    @property
    def push_active(self) -> bool:
        return self._push_task is not None and not self._push_task.done()

    def _mark_connected(self) -> None:
        self._reconnect_attempts = 0

    async def _push_loop(self) -> None:
        """
        Keep the push channel subscribed.

        Reconnects with capped exponential backoff. After
        max_reconnect_attempts consecutive failures the listener stops and
        the cache keeps working on pull refreshes only.
        """
        while True:
            try:
                await self.client.listen(
                    self.apply_push,
                    keys=list(KEY_SCHEMAS),
                    on_connected=self._mark_connected,
                )
            except ConfigUnavailableError as e:
                logger.warning(
                    "Config push channel lost",
                    extra={"error": str(e), "attempt": self._reconnect_attempts},
                )
            except Exception as e:
                logger.error(
                    "Config push listener crashed",
                    extra={"error": repr(e), "attempt": self._reconnect_attempts},
                )

            if self._reconnect_attempts >= self.max_reconnect_attempts:
                logger.error(
                    "Config push channel gave up reconnecting, "
                    "continuing with pull refreshes only",
                    extra={"attempts": self._reconnect_attempts},
                )
                return

            delay = backoff_delay(
                self._reconnect_attempts, self.reconnect_delay, self.max_backoff
            )
            self._reconnect_attempts += 1
            await asyncio.sleep(delay)
