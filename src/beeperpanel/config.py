"""Settings for the Beeper panel server."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "http://localhost:23373"


class Settings(BaseSettings):
    """Panel settings, read from ``BEEPER_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(env_prefix="BEEPER_", env_file=".env", extra="ignore")

    base_url: str = Field(
        default=DEFAULT_BASE_URL, description="Base URL of the local Beeper Desktop API"
    )
    access_token: str | None = Field(
        default=None, description="OAuth access token for the Beeper Desktop API"
    )
    locale: str | None = Field(default=None, description="Display locale, e.g. en or cs-CZ")
    port: int = Field(default=8123, description="Port for the MCP server")
    timeout: float = Field(default=10.0, description="HTTP timeout in seconds")
