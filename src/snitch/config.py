"""TOML configuration loader."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, ValidationError

from snitch.errors import ConfigError

DEFAULT_CONFIG_PATHS = [
    Path("snitch.toml"),
    Path.home() / ".config" / "snitch" / "config.toml",
    Path("/etc/snitch/config.toml"),
]


class VirusTotalConfig(BaseModel):
    api_key: SecretStr | None = Field(default=None, description="Falls back to $VT_API_KEY")
    # Free tier: 4 requests/minute, 500/day
    max_requests: int = Field(default=4, ge=1)
    threshold: float = Field(default=120.0, gt=0, description="Seconds between batches")


class XForceConfig(BaseModel):
    api_key: SecretStr | None = Field(default=None, description="Falls back to $XFORCE_API_KEY")
    api_password: SecretStr | None = Field(
        default=None, description="Falls back to $XFORCE_API_PASSWORD"
    )
    # Free tier: 5000 requests/month, roughly 6 an hour
    max_requests: int = Field(default=6, ge=1)
    threshold: float = Field(default=600.0, gt=0, description="Seconds between batches")


class SnitchConfig(BaseModel):
    """Configuration for a monitoring run."""

    providers: list[str] = Field(
        default_factory=lambda: ["virustotal"],
        description="Providers to query (virustotal, xforce)",
    )
    hash_algorithm: str = Field(default="md5", description="Digest used for directory samples")
    idle_interval: float = Field(
        default=30.0, gt=0, description="Max wait on an empty pending list before re-checking"
    )
    scan_timeout: float = Field(default=60.0, gt=0, description="Deadline for a single scan")
    heartbeat: float = Field(default=60.0, gt=0, description="Seconds between status logs")

    virustotal: VirusTotalConfig = Field(default_factory=VirusTotalConfig)
    xforce: XForceConfig = Field(default_factory=XForceConfig)


def load_config(config_path: Path | None = None) -> SnitchConfig:
    """Load config from TOML file, falling back to defaults, then apply env credentials."""
    if config_path is not None and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    cfg = None
    if config_path is not None:
        cfg = _parse_toml(config_path)
    else:
        for path in DEFAULT_CONFIG_PATHS:
            if path.exists():
                cfg = _parse_toml(path)
                break

    return apply_env(cfg or SnitchConfig())


def apply_env(cfg: SnitchConfig, environ: dict[str, str] | None = None) -> SnitchConfig:
    """Fill credentials missing from the file with environment variables."""
    env = os.environ if environ is None else environ

    if cfg.virustotal.api_key is None and env.get("VT_API_KEY"):
        cfg.virustotal.api_key = SecretStr(env["VT_API_KEY"])
    if cfg.xforce.api_key is None and env.get("XFORCE_API_KEY"):
        cfg.xforce.api_key = SecretStr(env["XFORCE_API_KEY"])
    if cfg.xforce.api_password is None and env.get("XFORCE_API_PASSWORD"):
        cfg.xforce.api_password = SecretStr(env["XFORCE_API_PASSWORD"])
    return cfg


def _parse_toml(path: Path) -> SnitchConfig:
    try:
        data = tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    section = dict(data.get("snitch", {}))
    for provider in ("virustotal", "xforce"):
        if provider in data:
            section[provider] = data[provider]

    try:
        return SnitchConfig(**section)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}:\n{exc}") from exc
