"""
Config service client.

HTTP pull and WebSocket push access to the external configuration service.
Every transport problem surfaces as ConfigUnavailableError; the cache on top
decides how to degrade.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
from loguru import logger

from cpa_engine.config.constants import CONFIG_KEY_ENDPOINTS
from cpa_engine.config.settings import settings
from cpa_engine.utils.exceptions import ConfigUnavailableError

# Push message types
MSG_CONFIG_CHANGED = "config_changed"
MSG_CONNECTED = "connected"
MSG_SUBSCRIBED = "subscribed"
MSG_ERROR = "error"

ChangeHandler = Callable[[str, Any], Awaitable[None]]


class ConfigProviderClient:
    """Client for the external config service."""

    def __init__(
        self,
        base_url: str | None = None,
        ws_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize client.

        Args:
            base_url: REST base URL (defaults to settings)
            ws_url: WebSocket URL of the push channel (defaults to settings)
            api_key: Value of the X-API-Key header (defaults to settings)
            timeout: Total request timeout in seconds (defaults to settings)
        """
        self.base_url = (base_url or settings.config_service_url).rstrip("/")
        self.ws_url = ws_url or settings.config_service_ws_url
        self.api_key = api_key if api_key is not None else settings.config_service_api_key
        self.timeout = aiohttp.ClientTimeout(
            total=timeout or settings.config_service_timeout
        )
        self._session: aiohttp.ClientSession | None = None

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.headers, timeout=self.timeout
            )
        return self._session

    def url_for(self, key: str) -> str:
        """
        REST URL serving a configuration key.

        The two CPA keys have dedicated endpoints, everything else goes
        through the generic /config/{key}/value route.
        """
        endpoint = CONFIG_KEY_ENDPOINTS.get(key)
        if endpoint:
            return f"{self.base_url}{endpoint}"
        return f"{self.base_url}/config/{key}/value"

    async def fetch_value(self, key: str) -> Any:
        """
        Fetch the current value of a key.

        Args:
            key: Configuration key

        Returns:
            Raw (unvalidated) value

        Raises:
            ConfigUnavailableError: On transport failure, timeout, 404,
                non-JSON body or an unsuccessful envelope
        """
        url = self.url_for(key)
        try:
            session = await self._get_session()
            async with session.get(url) as response:
                if response.status == 404:
                    raise ConfigUnavailableError(
                        f"Config key {key} not found", key=key, absent=True
                    )
                if response.status != 200:
                    raise ConfigUnavailableError(
                        f"Config service returned HTTP {response.status} for {key}",
                        key=key,
                        status=response.status,
                    )
                body = await response.json(content_type=None)
        except ConfigUnavailableError:
            raise
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise ConfigUnavailableError(
                f"Failed to fetch config key {key}: {e}", key=key
            ) from e

        return self._unwrap(key, body)

    def _unwrap(self, key: str, body: Any) -> Any:
        """Extract the value from a {success, data} envelope."""
        if not isinstance(body, dict) or not body.get("success"):
            message = body.get("error") if isinstance(body, dict) else None
            raise ConfigUnavailableError(
                f"Config service rejected {key}: {message or 'unsuccessful response'}",
                key=key,
            )

        data = body.get("data")
        if key in CONFIG_KEY_ENDPOINTS:
            return data
        if not isinstance(data, dict) or "value" not in data:
            raise ConfigUnavailableError(
                f"Config service response for {key} has no value", key=key
            )
        return data["value"]

    async def listen(
        self,
        on_change: ChangeHandler,
        keys: list[str],
        on_connected: Callable[[], None] | None = None,
    ) -> None:
        """
        Consume the push channel until it closes.

        Sends a subscribe message for keys right after connecting and
        dispatches every config_changed message to on_change. Returns when
        the server closes the connection.

        Args:
            on_change: Coroutine called with (key, value)
            keys: Keys to subscribe to
            on_connected: Called once the socket is open

        Raises:
            ConfigUnavailableError: If the connection fails or breaks
        """
        try:
            session = await self._get_session()
            async with session.ws_connect(self.ws_url, heartbeat=30) as ws:
                logger.info(
                    "Config push channel connected",
                    extra={"url": self.ws_url, "keys": keys},
                )
                if on_connected:
                    on_connected()
                await ws.send_json({"action": "subscribe", "keys": keys})

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        await self._dispatch(msg.data, on_change)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise ConfigUnavailableError(
                            f"Config push channel error: {ws.exception()}"
                        )
        except ConfigUnavailableError:
            raise
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ConfigUnavailableError(f"Config push channel failed: {e}") from e

        logger.warning("Config push channel closed by server")

    async def _dispatch(self, raw: str, on_change: ChangeHandler) -> None:
        """Route one push message."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Invalid push message", extra={"raw": raw[:200]})
            return

        if not isinstance(message, dict):
            logger.warning("Push message is not an object", extra={"raw": raw[:200]})
            return

        msg_type = message.get("type")
        if msg_type == MSG_CONFIG_CHANGED:
            key = message.get("key")
            if not key:
                logger.warning("Push message without key", extra={"message": message})
                return
            await on_change(key, message.get("value"))
        elif msg_type in (MSG_CONNECTED, MSG_SUBSCRIBED):
            logger.debug(f"Config push: {msg_type}", extra={"message": message})
        elif msg_type == MSG_ERROR:
            logger.error(
                "Config push channel reported an error",
                extra={"error": message.get("message")},
            )
        else:
            logger.debug(f"Unknown push message type: {msg_type}")

    async def health_check(self) -> dict[str, Any]:
        """
        Probe the config service.

        Returns:
            {"ok": bool, "status": HTTP status}

        Raises:
            ConfigUnavailableError: On transport failure
        """
        try:
            session = await self._get_session()
            async with session.get(f"{self.base_url}/health") as response:
                return {"ok": response.status == 200, "status": response.status}
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ConfigUnavailableError(f"Config service health check failed: {e}") from e

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
