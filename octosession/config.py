"""Configuration system for octosession using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.octosession] section (project-level)
3. ./octosession.toml (project-level, explicit)
4. ~/.config/octosession/config.toml (user-level, overrides project)
5. Environment variables and a local .env file (highest priority)

Environment variables use OCTOSESSION_ prefix with nested delimiter __.
Example: OCTOSESSION_GITHUB__CLIENT_ID, OCTOSESSION_SESSION__STORE_BACKEND
"""

from __future__ import annotations

import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .exceptions import ConfigurationError


if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib  # type: ignore[import-not-found]
    except ImportError:
        tomllib = None


APP_NAME = "octosession"

DEFAULT_REDIRECT_URI = "http://localhost:3000/auth/callback"

# Values shipped in .env.example that must be replaced before use
_PLACEHOLDERS: dict[str, str] = {
    "client_id": "your_github_client_id_here",
    "client_secret": "your_github_client_secret_here",
}


def _user_config_dir() -> Path:
    """Per-user configuration directory."""
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "~")).expanduser() / APP_NAME
    return Path("~/.config").expanduser() / APP_NAME


def default_data_dir() -> Path:
    """Per-user data directory used by the file-backed session store."""
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA", "~")
        return Path(base).expanduser() / APP_NAME
    if sys.platform == "darwin":
        return Path("~/Library/Application Support").expanduser() / APP_NAME
    xdg = os.environ.get("XDG_DATA_HOME")
    return (Path(xdg) if xdg else Path("~/.local/share").expanduser()) / APP_NAME


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    # Project-level pyproject.toml [tool.octosession] (lowest file priority)
    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    project_toml = Path(f"{APP_NAME}.toml")
    if project_toml.exists():
        files.append(project_toml)

    # User-level config (overrides project configs)
    user_config = _user_config_dir() / "config.toml"
    if user_config.exists():
        files.append(user_config)

    # Environment variable override for config file (highest file priority)
    env_config = os.environ.get("OCTOSESSION_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    if tomllib is None:
        return {}

    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get(APP_NAME, {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {"client_secret"}

_REDACTED = "********"


class GitHubOAuthSettings(BaseSettings):
    """GitHub OAuth App configuration.

    Environment prefix: OCTOSESSION_GITHUB__
    Example: OCTOSESSION_GITHUB__CLIENT_ID=Iv1.0123456789abcdef

    TOML section: [tool.octosession.github]
    """

    model_config = SettingsConfigDict(
        env_prefix="OCTOSESSION_GITHUB__",
        env_file=".env",
        extra="ignore",
    )

    client_id: str = Field(default="", description="OAuth App client ID")
    client_secret: str = Field(default="", description="OAuth App client secret")

    authorize_url: str = Field(
        default="https://github.com/login/oauth/authorize",
        description="Authorization endpoint URL",
    )
    token_url: str = Field(
        default="https://github.com/login/oauth/access_token",
        description="Token exchange endpoint URL",
    )
    api_url: str = Field(
        default="https://api.github.com",
        description="REST API base URL used for profile and email lookups",
    )
    redirect_uri: str = Field(
        default=DEFAULT_REDIRECT_URI,
        description="Loopback redirect URI registered with the OAuth App",
    )
    scopes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["user:email", "read:user"],
        description="Requested scopes (comma or space separated in env vars)",
    )
    auth_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Maximum seconds to wait for the OAuth2 callback",
    )
    user_agent: str = Field(default="octosession", description="User-Agent for API calls")

    @field_validator("scopes", mode="before")
    @classmethod
    def parse_scopes(cls, v: Any) -> list[str]:
        """Parse comma- or space-separated strings from env vars."""
        if isinstance(v, str):
            return [s for s in v.replace(",", " ").split() if s]
        return v or []

    def validate_credentials(self) -> None:
        """Check that real OAuth App credentials are configured.

        Raises
        ------
        ConfigurationError
            If the client ID or secret is missing or a placeholder.
        """
        for name in ("client_id", "client_secret"):
            value = getattr(self, name)
            env_name = f"OCTOSESSION_GITHUB__{name.upper()}"
            if not value:
                msg = f"GitHub {name} is not configured. Set {env_name} in your .env file."
                raise ConfigurationError(msg, setting=name)
            if value == _PLACEHOLDERS[name]:
                msg = f"Replace the placeholder {env_name} in your .env file with the real value."
                raise ConfigurationError(msg, setting=name)
        if not self.redirect_uri.startswith(("http://", "https://")):
            msg = f"Redirect URI must be an http(s) URL, got {self.redirect_uri!r}"
            raise ConfigurationError(msg, setting="redirect_uri")


class SessionSettings(BaseSettings):
    """Session persistence and background maintenance settings.

    Environment prefix: OCTOSESSION_SESSION__
    Example: OCTOSESSION_SESSION__STORE_BACKEND=file
    """

    model_config = SettingsConfigDict(
        env_prefix="OCTOSESSION_SESSION__",
        extra="ignore",
    )

    store_backend: Literal["keyring", "file", "memory"] = Field(
        default="keyring",
        description="Session store backend: keyring, file, or memory",
    )
    service_name: str = Field(
        default=APP_NAME,
        description="Service name under which keyring entries are stored",
    )
    data_dir: str = Field(
        default="",
        description="Directory for the encrypted session file (empty for the OS default)",
    )
    refresh_interval_seconds: float = Field(
        default=30 * 60,
        gt=0,
        description="Interval of the background profile refresh",
    )
    validation_interval_seconds: float = Field(
        default=60 * 60,
        gt=0,
        description="Interval of the background token validation",
    )
    max_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Consecutive background failures tolerated before logout",
    )

    @property
    def resolved_data_dir(self) -> Path:
        """Data directory with the OS default applied."""
        return Path(self.data_dir).expanduser() if self.data_dir else default_data_dir()


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: OCTOSESSION_LOG__
    Example: OCTOSESSION_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="OCTOSESSION_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


class OctoSessionSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: OCTOSESSION__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.octosession] section
    3. ./octosession.toml (project-level)
    4. ~/.config/octosession/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="OCTOSESSION__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    github: GitHubOAuthSettings = Field(default_factory=GitHubOAuthSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()

        # File values sit below each section's own env prefix
        for name, section_cls in (
            ("github", GitHubOAuthSettings),
            ("session", SessionSettings),
            ("log", LogSettings),
        ):
            file_values = toml_config.get(name)
            if isinstance(file_values, dict) and name not in data:
                env_values = section_cls().model_dump(exclude_unset=True)
                toml_config[name] = section_cls(**_deep_merge(file_values, env_values))

        super().__init__(**_deep_merge(toml_config, data))

    def _sections(self) -> list[tuple[str, str, BaseSettings]]:
        return [
            ("GitHub OAuth", "GITHUB", self.github),
            ("Session", "SESSION", self.session),
            ("Logging", "LOG", self.log),
        ]

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = [
            "# octosession Environment Variables",
            "# Generated by: octosession config --env",
            "",
        ]
        for _, env_prefix, section in self._sections():
            for field_name, field_value in section.model_dump(exclude=_SENSITIVE_FIELDS).items():
                env_name = f"OCTOSESSION_{env_prefix}__{field_name.upper()}"
                if isinstance(field_value, list):
                    value_str = ",".join(str(v) for v in field_value)
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                else:
                    value_str = str(field_value)
                lines.append(f'export {env_name}="{value_str}"')
            for redacted_name in sorted(_SENSITIVE_FIELDS & type(section).model_fields.keys()):
                env_name = f"OCTOSESSION_{env_prefix}__{redacted_name.upper()}"
                lines.append(f'export {env_name}="{_REDACTED}"')
        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["octosession Configuration", "=" * 60]
        for display_name, _, section in self._sections():
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in section.model_dump(exclude=_SENSITIVE_FIELDS).items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:28} = {value_str}")
            lines.extend(
                f"  {rn:28} = {_REDACTED}"
                for rn in sorted(_SENSITIVE_FIELDS & type(section).model_fields.keys())
            )
        return "\n".join(lines)


def get_setup_instructions(redirect_uri: str = DEFAULT_REDIRECT_URI) -> str:
    """Human-readable steps for registering a GitHub OAuth App.

    Parameters
    ----------
    redirect_uri : str
        The callback URL the app will listen on.

    Returns
    -------
    str
        Multi-line setup instructions.
    """
    return f"""
GitHub OAuth App setup:

1. Visit https://github.com/settings/applications/new
2. Fill in the application details:
   - Application name: octosession
   - Homepage URL: http://localhost
   - Authorization callback URL: {redirect_uri}

3. After creating the app, copy its Client ID and generate a Client Secret.

4. Create a .env file in the working directory:
   OCTOSESSION_GITHUB__CLIENT_ID=<your client id>
   OCTOSESSION_GITHUB__CLIENT_SECRET=<your client secret>
   OCTOSESSION_GITHUB__REDIRECT_URI={redirect_uri}

5. Restart the application.

The callback URL registered on GitHub must match OCTOSESSION_GITHUB__REDIRECT_URI
exactly, and its port must be free while signing in. Keep .env out of version control.
"""


@lru_cache(maxsize=1)
def get_settings() -> OctoSessionSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return OctoSessionSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> OctoSessionSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
