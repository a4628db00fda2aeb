from functools import lru_cache
import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Asia/Colombo", alias="TIMEZONE")

    database_url: str = Field(default="", alias="DATABASE_URL")
    postgres_db: str = Field(default="evcharge", alias="POSTGRES_DB")
    postgres_user: str = Field(default="evcharge", alias="POSTGRES_USER")
    postgres_password: str = Field(default="evcharge", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")

    booking_horizon_days: int = Field(default=7, alias="BOOKING_HORIZON_DAYS")
    modify_cutoff_hours: int = Field(default=12, alias="MODIFY_CUTOFF_HOURS")
    qr_token_ttl_min: int = Field(default=15, alias="QR_TOKEN_TTL_MIN")
    # 0 disables the per-request commit deadline
    request_timeout_seconds: float = Field(default=10, alias="REQUEST_TIMEOUT_SECONDS")

    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    maintenance_hour: int = Field(default=0, alias="MAINTENANCE_HOUR")
    maintenance_minute: int = Field(default=0, alias="MAINTENANCE_MINUTE")

    notification_webhook_url: str = Field(default="", alias="NOTIFICATION_WEBHOOK_URL")

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(**os.environ)
