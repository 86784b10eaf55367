from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    # Langflow flow execution API
    flow_id: str | None = Field(default=None, alias="FLOW_ID")
    langflow_id: str | None = Field(default=None, alias="LANGFLOW_ID")
    langflow_base_url: str | None = Field(default=None, alias="LANGFLOW_BASE_URL")
    application_token: str | None = Field(default=None, alias="APPLICATION_TOKEN")
    # Initiation POST timeout, also used as the stream connect timeout
    langflow_timeout_seconds: float = Field(default=60.0, alias="LANGFLOW_TIMEOUT_SECONDS")
    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    debug: bool = Field(default=False, alias="DEBUG")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Return CORS origins parsed from the comma separated ``CORS_ORIGINS``."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def base_url(self) -> str:
        """Return the Langflow base URL without a trailing slash."""
        return (self.langflow_base_url or "").rstrip("/")

    def missing_langflow_settings(self) -> list[str]:
        """Return env names of the upstream settings that are not configured."""
        required = {
            "FLOW_ID": self.flow_id,
            "LANGFLOW_ID": self.langflow_id,
            "LANGFLOW_BASE_URL": self.langflow_base_url,
            "APPLICATION_TOKEN": self.application_token,
        }
        return [name for name, value in required.items() if not (value or "").strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
