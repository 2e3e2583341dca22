"""Application settings and configuration.

This module defines all configuration options for the samlflow service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="samlflow", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and host session tokens
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 8,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    session_cookie_name: str = Field(default="samlflow_session", alias="SESSION_COOKIE_NAME")
    auth_cookie_name: str = Field(default="samlflow_auth", alias="AUTH_COOKIE_NAME")
    cookie_secure: bool = Field(default=True, alias="COOKIE_SECURE")

    # Database configuration
    database_url: str = Field(default="sqlite:///./samlflow.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Public location of the host application and of the SAML routes
    base_url: str = Field(default="http://localhost:8000", alias="BASE_URL")
    route_prefix: str = Field(default="/saml", alias="ROUTE_PREFIX")

    # Login flow behaviour
    excluded_paths: list[str] = Field(
        default=["/health", "/docs", "/redoc", "/openapi.json", "/saml/acs", "/saml/meta"],
        alias="EXCLUDED_PATHS",
    )
    bypass_param: str = Field(default="bypass", alias="BYPASS_PARAM")
    bypass_value: str = Field(default="1", alias="BYPASS_VALUE")
    provider_param: str = Field(default="samlIdpId", alias="PROVIDER_PARAM")
    slo_flag_param: str = Field(default="idpLogout", alias="SLO_FLAG_PARAM")
    allow_unsolicited: bool = Field(default=True, alias="ALLOW_UNSOLICITED")
    process_redirects: bool = Field(default=True, alias="PROCESS_REDIRECTS")
    enforce_on_all_requests: bool = Field(default=True, alias="ENFORCE_ON_ALL_REQUESTS")
    login_button_name_length: int = Field(default=12, alias="LOGIN_BUTTON_NAME_LENGTH")

    # Out-of-band retention sweep
    retention_days: int = Field(default=30, alias="RETENTION_DAYS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return the database URL with async drivers swapped for their sync variants.

        Alembic and the maintenance commands run synchronously.
        """
        url = self.effective_database_url
        for async_driver, sync_driver in (
            ("postgresql+asyncpg", "postgresql+psycopg"),
            ("sqlite+aiosqlite", "sqlite"),
        ):
            if url.startswith(async_driver):
                return url.replace(async_driver, sync_driver, 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def public_base_url(self) -> str:
        """Return the host application URL without a trailing slash."""
        return self.base_url.rstrip("/")

    @property
    def logout_path(self) -> str:
        return f"{self.route_prefix}/logout"

    @property
    def slo_path(self) -> str:
        return f"{self.route_prefix}/slo"


settings = Settings()  # type: ignore[call-arg]
