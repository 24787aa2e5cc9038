"""Provider registry — builds configured providers."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from snitch.errors import ConfigError
from snitch.providers.virustotal import VirusTotalProvider
from snitch.providers.xforce import XForceProvider

if TYPE_CHECKING:
    from snitch.config import SnitchConfig
    from snitch.providers.base import Provider

PROVIDER_CLASSES: dict[str, type] = {
    "virustotal": VirusTotalProvider,
    "xforce": XForceProvider,
}


def configured_providers(cfg: SnitchConfig) -> list[str]:
    """Names of providers whose credentials are present."""
    ready = []
    if cfg.virustotal.api_key is not None:
        ready.append("virustotal")
    if cfg.xforce.api_key is not None and cfg.xforce.api_password is not None:
        ready.append("xforce")
    return ready


def _check(name: str, cfg: SnitchConfig) -> None:
    if name not in PROVIDER_CLASSES:
        raise ConfigError(f"Unknown provider '{name}' (known: {', '.join(PROVIDER_CLASSES)})")
    if name not in configured_providers(cfg):
        raise ConfigError(f"Missing credentials for provider '{name}'")


def get_provider(name: str, cfg: SnitchConfig) -> Provider:
    _check(name, cfg)

    if name == "virustotal":
        vt = cfg.virustotal
        return VirusTotalProvider(
            vt.api_key.get_secret_value(),
            max_requests=vt.max_requests,
            threshold=timedelta(seconds=vt.threshold),
        )

    xf = cfg.xforce
    return XForceProvider(
        xf.api_key.get_secret_value(),
        xf.api_password.get_secret_value(),
        max_requests=xf.max_requests,
        threshold=timedelta(seconds=xf.threshold),
    )


def build_providers(cfg: SnitchConfig) -> list[Provider]:
    if not cfg.providers:
        raise ConfigError("No providers configured")
    for name in cfg.providers:
        _check(name, cfg)
    return [get_provider(name, cfg) for name in cfg.providers]
