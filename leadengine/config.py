from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    LEADENGINE_DB_URL: str = "sqlite+aiosqlite:///./leadengine.db"
    LOG_LEVEL: str = "INFO"

    # --- Minimal auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Distribution ---
    # Lead pool cap when the rule has no max_leads_per_agent
    DEFAULT_DISTRIBUTION_LIMIT: int = 100

    # --- Scheduler tuning ---
    # Periodic re-score so the recent-activity bonus decays without new events
    SCHED_RESCORE_ENABLED: bool = True
    SCHED_RESCORE_INTERVAL_MINUTES: int = 360


settings = Settings()
