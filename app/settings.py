from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = Field(..., alias="DATABASE_URL")
    DEBUG: bool = Field(default=False, alias="DEBUG")
    REDIS_URL: RedisDsn = Field(..., alias="REDIS_URL")

    # Token signing
    JWT_SECRET: str = Field(..., alias="JWT_SECRET")
    JWT_REFRESH_SECRET: str = Field(..., alias="JWT_REFRESH_SECRET")
    PUBLIC_TOKEN_SECRET: str = Field(..., alias="PUBLIC_TOKEN_SECRET")
    JWT_ALGORITHM: str = Field(default="HS256", alias="JWT_ALGORITHM")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=60 * 24 * 3, alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )  # 3 days
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=30, alias="REFRESH_TOKEN_EXPIRE_DAYS")
    PUBLIC_TOKEN_EXPIRE_DAYS: int = Field(default=30, alias="PUBLIC_TOKEN_EXPIRE_DAYS")

    PASSWORD_HASH_ROUNDS: int = Field(default=12, alias="PASSWORD_HASH_ROUNDS")

    # Ticket configuration
    AUTO_ROUTE_TICKETS: bool = Field(default=True, alias="AUTO_ROUTE_TICKETS")
    TICKET_NUMBER_MAX_ATTEMPTS: int = Field(default=5, alias="TICKET_NUMBER_MAX_ATTEMPTS")

    # Audit configuration
    AUDIT_PAGE_SIZE: int = Field(default=50, alias="AUDIT_PAGE_SIZE")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
