"""Settings resolution with profile precedence chain and named profile support."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_PATH = Path.home() / ".config" / "doable" / "config.toml"


class DoableSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DOABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_profile: str | None = None

    # Store
    api_url: str = "http://localhost:3000/api"
    api_token: SecretStr | None = None
    team_id: str | None = None
    timeout: float = 30.0

    # Refresh heuristic timings, seconds
    settle_delay: float = 0.4
    fallback_delay: float = 0.7
    ready_delay: float = 0.5

    # View cache
    cache_ttl: float = 300.0

    log_level: str = "WARNING"


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/doable/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def get_settings(profile: str | None = None) -> DoableSettings:
    """Resolve the active profile and return a fully populated DoableSettings.

    Precedence (highest to lowest):
    1. profile argument (--profile CLI flag)
    2. DOABLE_DEFAULT_PROFILE env var
    3. default_profile key in ~/.config/doable/config.toml
    4. First profile defined in ~/.config/doable/config.toml
    """
    toml_config = _load_toml()

    active = (
        profile
        or os.environ.get("DOABLE_DEFAULT_PROFILE")
        or toml_config.get("default_profile")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        elif active not in toml_config:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    # Profile values are init kwargs; env vars and .env fill whatever the profile leaves unset.
    settings = DoableSettings(**profile_defaults)

    if not settings.team_id:
        typer.echo(
            "Missing team. Set DOABLE_TEAM_ID or "
            f"team_id in the [{active or 'profile'}] section of {CONFIG_PATH}"
        )
        raise typer.Exit(1)

    return settings
