from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from flask import Flask, current_app

from pbd.errors import PlatformNotSupportedError

from .base import GatewayClient, GatewaySettings
from .everyorg import EveryOrgClient
from .justgiving import JustGivingClient

log = logging.getLogger(__name__)

EXTENSION_KEY = "pbd.gateways"


class GatewayRegistry:
    """Platform tag -> adapter. Unknown or disabled platforms raise 501."""

    def __init__(self, clients: Iterable[GatewayClient] = ()) -> None:
        self._clients: Dict[str, GatewayClient] = {}
        for client in clients:
            self.register(client)

    def register(self, client: GatewayClient) -> None:
        self._clients[client.platform] = client

    def get(self, platform: str) -> GatewayClient:
        client = self._clients.get((platform or "").strip().lower())
        if client is None:
            raise PlatformNotSupportedError(
                f"Platform '{platform}' is not supported yet",
                details={"supported": self.platforms},
            )
        return client

    def reconciler_for(self, platform: str) -> Optional[GatewayClient]:
        client = self._clients.get(platform)
        if client is None or not client.supports_reconciliation:
            return None
        return client

    @property
    def platforms(self) -> List[str]:
        return sorted(self._clients)

    def describe(self) -> Mapping[str, dict]:
        return {name: c.describe() for name, c in sorted(self._clients.items())}


def build_registry(config: Mapping) -> GatewayRegistry:
    timeout = float(config.get("GATEWAY_TIMEOUT_SECONDS", 15.0))
    retries = int(config.get("GATEWAY_MAX_RETRIES", 2))

    registry = GatewayRegistry()
    registry.register(
        JustGivingClient(
            GatewaySettings(
                platform=JustGivingClient.platform,
                api_key=config.get("JUSTGIVING_API_KEY") or "",
                api_url=config.get("JUSTGIVING_API_URL") or "",
                checkout_url=config.get("JUSTGIVING_CHECKOUT_URL") or "",
                return_url=config.get("JUSTGIVING_RETURN_URL") or "",
                currency=config.get("JUSTGIVING_CURRENCY") or "GBP",
                timeout=timeout,
                max_retries=retries,
            )
        )
    )

    if config.get("EVERYORG_ENABLED"):
        registry.register(
            EveryOrgClient(
                GatewaySettings(
                    platform=EveryOrgClient.platform,
                    api_key=config.get("EVERYORG_API_KEY") or "",
                    api_url=config.get("EVERYORG_API_URL") or "",
                    checkout_url=config.get("EVERYORG_DONATE_URL") or "",
                    return_url=config.get("JUSTGIVING_RETURN_URL") or "",
                    currency=config.get("EVERYORG_CURRENCY") or "USD",
                    timeout=timeout,
                    max_retries=retries,
                )
            )
        )

    return registry


def init_gateways(app: Flask, registry: Optional[GatewayRegistry] = None) -> GatewayRegistry:
    registry = registry or build_registry(app.config)
    app.extensions[EXTENSION_KEY] = registry
    log.info("Donation gateways registered: %s", ", ".join(registry.platforms) or "none")
    return registry


def gateways() -> GatewayRegistry:
    return current_app.extensions[EXTENSION_KEY]
