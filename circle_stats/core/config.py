from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://circles:circles@db:5432/circles"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # Stats cache: backstop TTL behind the same-day flag and explicit invalidation.
    STATS_CACHE_TTL_SECONDS: int = 300

    # Max ids per batched alignment read.
    ALIGNMENT_FETCH_CHUNK_SIZE: int = 30

    # Contribution history: days computed per batch, default window length.
    HISTORY_DAY_BATCH_SIZE: int = 10
    HISTORY_DEFAULT_DAYS: int = 30

    # A day is "kept" when at least this fraction of members is fully aligned.
    KEPT_FRACTION_THRESHOLD: float = 0.5

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
