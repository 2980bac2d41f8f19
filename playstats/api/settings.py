"""API settings."""

from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class ApiSettings(BaseSettings):
    """API settings"""

    name: str = "playstats edge API"
    allowed_referers: str = "blog-vincent.chyu.org,vincent.chyu.org"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="PLAYSTATS_API_", env_file=".env", extra="ignore"
    )

    @field_validator("allowed_referers")
    def parse_allowed_referers(cls, v):
        """Parse allowed referer hosts."""
        return [host.strip() for host in v.split(",") if host.strip()]


class DatabaseSettings(BaseSettings):
    """Query executor settings"""

    backend: Literal["sqlite", "d1"] = "sqlite"
    sqlite_path: str = ":memory:"

    d1_account_id: str | None = None
    d1_database_id: str | None = None
    d1_api_token: SecretStr | None = None
    d1_timeout: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="PLAYSTATS_DB_", env_file=".env", extra="ignore"
    )

    @model_validator(mode="after")
    def check_d1_settings(self) -> Self:
        """Check D1 credentials are present when D1 is selected."""
        if self.backend == "d1" and not (
            self.d1_account_id and self.d1_database_id and self.d1_api_token
        ):
            raise ValueError(
                "D1 account id, database id and api token must be set for the d1 backend"
            )

        return self
