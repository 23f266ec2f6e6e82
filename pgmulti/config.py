"""App configuration loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .models import ConnectionProfile, SaveOption
from .orchestrator import COMBINED_FILENAME

CONFIG_FILE = Path.home() / ".config" / "pgmulti" / "config.toml"


class ConnectionProfileConfig(BaseModel):
    """Server profile stored in config.toml."""

    id: str
    name: str = Field(min_length=1)
    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=5432, ge=1, le=65535)
    user: str = "postgres"
    password: str | None = None
    save_password: bool = False

    def to_profile(self, password: str | None = None) -> ConnectionProfile:
        """Build the runtime profile, optionally overriding the stored password."""

        return ConnectionProfile(
            id=self.id,
            name=self.name,
            host=self.host,
            port=self.port,
            user=self.user,
            password=password if password is not None else (self.password or ""),
            save_password=self.save_password,
        )


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    profiles: list[ConnectionProfileConfig] = Field(default_factory=lambda: list(_default_profiles()))
    active_profile: str | None = None
    stop_on_error: bool = True
    save_option: SaveOption = SaveOption.NONE
    connect_timeout: float = 5.0
    combined_filename: str = COMBINED_FILENAME
    log_file: str | None = None
    log_level: str = "INFO"

    def profile(self, name: str | None = None) -> ConnectionProfileConfig | None:
        """Return the named profile, the active one, or the first configured."""

        target = name or self.active_profile
        for entry in self.profiles:
            if target in (entry.name, entry.id):
                return entry
        if name is None and self.profiles:
            return self.profiles[0]
        return None

    def with_active_profile(self, name: str) -> AppConfig:
        """Return a copy with the active profile updated."""

        return self.model_copy(update={"active_profile": name})

    def with_profile(self, profile: ConnectionProfileConfig) -> AppConfig:
        """Return a copy with ``profile`` added, or replaced in place by id."""

        profiles = [profile if entry.id == profile.id else entry for entry in self.profiles]
        if all(entry.id != profile.id for entry in self.profiles):
            profiles.append(profile)
        return self.model_copy(update={"profiles": profiles})

    def without_profile(self, profile_id: str) -> AppConfig:
        """Return a copy without the profile ``profile_id``.

        The active profile falls back to the first remaining one when it is removed.
        """

        profiles = [entry for entry in self.profiles if entry.id != profile_id]
        active = self.active_profile
        removed = self.profile(profile_id)
        if removed is not None and active in (removed.id, removed.name):
            active = profiles[0].id if profiles else None
        return self.model_copy(update={"profiles": profiles, "active_profile": active})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        with CONFIG_FILE.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()

    profiles_data = raw.get("profiles")
    profiles: list[ConnectionProfileConfig] | None = None
    if isinstance(profiles_data, list):
        profiles = []
        for entry in profiles_data:
            if not isinstance(entry, dict):
                continue
            try:
                profiles.append(ConnectionProfileConfig(**entry))
            except ValidationError:
                continue
        profiles = profiles or None

    settings = {
        key: raw[key]
        for key in (
            "active_profile",
            "stop_on_error",
            "save_option",
            "connect_timeout",
            "combined_filename",
            "log_file",
            "log_level",
        )
        if key in raw
    }
    if profiles is not None:
        settings["profiles"] = profiles
    try:
        return AppConfig(**settings)
    except ValidationError:
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk.

    Passwords are only written for profiles that opted into saving them.
    """

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f"stop_on_error = {str(config.stop_on_error).lower()}",
        f'save_option = "{config.save_option.value}"',
        f"connect_timeout = {config.connect_timeout}",
        f"combined_filename = {_quote(config.combined_filename)}",
        f"log_level = {_quote(config.log_level)}",
    ]
    if config.active_profile:
        lines.append(f"active_profile = {_quote(config.active_profile)}")
    if config.log_file:
        lines.append(f"log_file = {_quote(config.log_file)}")
    for profile in config.profiles:
        lines.append("")
        lines.append("[[profiles]]")
        lines.append(f"id = {_quote(profile.id)}")
        lines.append(f"name = {_quote(profile.name)}")
        lines.append(f"host = {_quote(profile.host)}")
        lines.append(f"port = {profile.port}")
        lines.append(f"user = {_quote(profile.user)}")
        lines.append(f"save_password = {str(profile.save_password).lower()}")
        if profile.save_password and profile.password:
            lines.append(f"password = {_quote(profile.password)}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _default_profiles() -> tuple[ConnectionProfileConfig, ...]:
    """Default profile shown on first run before config is customized."""

    return (
        ConnectionProfileConfig(
            id="local",
            name="Local Server",
            host="localhost",
            port=5432,
            user="postgres",
        ),
    )


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConnectionProfileConfig",
    "load_config",
    "save_config",
]
