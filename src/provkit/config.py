"""Configuration management with pydantic-settings."""

from typing import Annotated, Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_RETRY_STATUS_CODES: frozenset[int] = frozenset({401, 403, 404, 409, 500})


class ProvkitSettings(BaseSettings):
    """provkit settings loaded from environment variables.

    All settings use the PROVKIT_ prefix for environment variables.
    """

    # HTTP client configuration
    connect_timeout: float = Field(
        default=30,
        description="Connect timeout in seconds, shared by every client",
    )
    read_timeout: float = Field(
        default=60,
        description="Read timeout in seconds, shared by every client",
    )
    trust_all_certificates: bool = Field(
        default=False,
        description="Disable TLS verification (development environments only)",
    )
    retry_status_codes: Annotated[frozenset[int], NoDecode] = Field(
        default=DEFAULT_RETRY_STATUS_CODES,
        description="Statuses that trigger one retry with direct credentials",
    )

    # SSO cookie configuration
    sso_cookie_name: str = Field(
        default="crowd.token_key",
        description="Name of the SSO cookie injected into session cookie jars",
    )
    sso_domain: str | None = Field(
        default=None,
        description="Cookie domain shared by the platforms behind the SSO",
    )

    # Request header configuration
    csrf_header_name: str = Field(
        default="X-Atlassian-Token",
        description="Anti-CSRF bypass header required by the wiki platform",
    )
    csrf_header_value: str = Field(default="no-check", description="Anti-CSRF header value")

    # Form login configuration
    login_username_field: str = Field(default="j_username", description="Username form field")
    login_password_field: str = Field(default="j_password", description="Password form field")
    login_failure_marker: str = Field(
        default="Invalid username and password",
        description="Text in a 2xx login response that still means failure",
    )

    # Identity configuration
    lowercase_group_names: bool = Field(
        default=False,
        description="Lowercase group names returned by the membership lookup",
    )
    technical_user: str | None = Field(
        default=None,
        description="Technical user for direct authentication",
    )
    technical_password: SecretStr | None = Field(
        default=None,
        description="Technical user password",
    )

    # Logging configuration
    log_level: str = Field(default="WARNING", description="Logging level")
    log_format: str = Field(default="console", description="Log output format: console or json")

    model_config = SettingsConfigDict(
        env_prefix="PROVKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("retry_status_codes", mode="before")
    @classmethod
    def _parse_status_codes(cls, value: Any) -> Any:
        """Accept a comma-separated string such as ``"401,403,500"``."""
        if isinstance(value, str):
            return frozenset(int(part) for part in value.split(",") if part.strip())
        if isinstance(value, int):
            return frozenset({value})
        return value

    @field_validator("connect_timeout", "read_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @property
    def uses_technical_user(self) -> bool:
        """True when both technical user name and password are configured."""
        return bool(self.technical_user) and bool(
            self.technical_password and self.technical_password.get_secret_value()
        )

    def display_items(self) -> list[tuple[str, str]]:
        """Return settings as (name, value) pairs with secrets masked.

        Returns:
            Ordered list of setting names and printable values.
        """
        items: list[tuple[str, str]] = []
        for name in type(self).model_fields:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                shown = "********" if value.get_secret_value() else ""
            elif isinstance(value, frozenset):
                shown = ",".join(str(v) for v in sorted(value))
            elif value is None:
                shown = ""
            else:
                shown = str(value)
            items.append((name, shown))
        return items


# Global settings instance
_settings: ProvkitSettings | None = None


def get_settings() -> ProvkitSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = ProvkitSettings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None
