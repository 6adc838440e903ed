from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    """
    Application configuration.

    - Secrets are NEVER stored in code.
    - All sensitive values are injected via environment variables (.env).
    - Validation happens at startup (fail fast).
    """

    # --------------------------------------------------
    # Tax service (e-invoicing)
    # --------------------------------------------------
    TAX_SERVICE_AUTH_URL: str = "http://ews.taxservice.am/taxsystem-fe-ws/taxpayer/loginService"
    TAX_SERVICE_REST_URL: str = "https://e-invoicing.taxservice.am/api"
    TAX_SERVICE_TIMEZONE: str = "Asia/Yerevan"
    TAX_SERVICE_HTTP_TIMEOUT_SECONDS: float = 20.0

    # Optional: credentials can also be stored in the "tax_service" setting row
    TAX_SERVICE_TIN: str | None = None
    TAX_SERVICE_USERNAME: str | None = None
    TAX_SERVICE_PASSWORD: str | None = None

    # Session token validity is assumed client-side (service does not report it)
    TOKEN_LIFETIME_SECONDS: int = 600

    # --------------------------------------------------
    # Database
    # --------------------------------------------------
    DATABASE_URL: str = "sqlite:///./app.db"

    # --------------------------------------------------
    # Sync / Scheduler
    # --------------------------------------------------
    SYNC_ENABLED: bool = True
    SYNC_INTERVAL_SECONDS: int = 1800
    SYNC_PAGE_SIZE: int = 100
    STATUS_REFRESH_SECONDS: int = 30

    # --------------------------------------------------
    # Internal Cache (seconds)
    # --------------------------------------------------
    STATUS_TTL_SECONDS: int = 60

    # --------------------------------------------------
    # Transfers
    # --------------------------------------------------
    DEFAULT_TRANSFER_WAREHOUSE_ID: int = 114

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"   # Ignore unrelated env vars (Docker / CI friendly)

    def model_post_init(self, __context) -> None:
        """
        Fail fast when credentials are half-configured.
        """
        if (self.TAX_SERVICE_USERNAME or self.TAX_SERVICE_PASSWORD) and not self.TAX_SERVICE_TIN:
            raise ValueError("TAX_SERVICE_USERNAME/TAX_SERVICE_PASSWORD require TAX_SERVICE_TIN in .env")


settings = Settings()
