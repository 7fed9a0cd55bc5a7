from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Local store for daily attendance snapshots (sqlite by default, asyncpg works too)
    DATABASE_URL: str = "sqlite+aiosqlite:///./attendance.db"

    # Hosted directory service: auth, workers / user_profiles tables, object storage
    DIRECTORY_URL: str = "http://localhost:54321"
    DIRECTORY_API_KEY: str = "change-me-in-production"
    DIRECTORY_TIMEOUT_SEC: float = 10.0
    WORKERS_TABLE: str = "workers"
    PROFILES_TABLE: str = "user_profiles"

    REPORTS_BUCKET: str = "worker_pdfs"
    REPORTS_PREFIX: str = "reports"
    # When set, every generated PDF is also written to this directory
    REPORTS_LOCAL_DIR: str | None = None
    # TTF font able to draw the currency sign. Without it the built-in Helvetica
    # is used, which has no glyph for "₹": set this or use e.g. CURRENCY_SYMBOL="Rs."
    REPORT_FONT_PATH: str | None = None
    PROJECT_LABEL: str = "Gopal Construction"
    REPORT_FOOTER: str = "Gopal Construction - Worker Management System"
    CURRENCY_SYMBOL: str = "₹"

    # False keeps the last non-empty snapshot of a date once its ledger is emptied
    SNAPSHOT_DELETE_WHEN_EMPTY: bool = False

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    LOG_LEVEL: str = "INFO"


settings = Settings()
