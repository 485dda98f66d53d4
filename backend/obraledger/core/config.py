"""
Application Configuration
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import warnings

INSECURE_SECRET_KEYS = (
    "obraledger-dev-secret-key-change-me-before-deploying",
    "secret-key",
    "change-me",
)


class Settings(BaseSettings):
    """Settings read from the environment (or a local .env file)"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Application
    APP_NAME: str = "ObraLedger API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite:///./obraledger.db"
    SQL_ECHO: bool = False

    # Security
    SECRET_KEY: str = INSECURE_SECRET_KEYS[0]
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480  # one work shift

    # Rate limiting, requests per window
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_LOGIN: int = 5
    RATE_LIMIT_CHECK_SWEEP: int = 5
    RATE_LIMIT_MONEY_WRITES: int = 30
    RATE_LIMIT_JOURNAL_WRITES: int = 20
    RATE_LIMIT_DEFAULT: int = 100

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Treasury
    LOCAL_CURRENCY: str = "PESOS"

    # Metrics cache
    METRICS_CACHE_TTL_SECONDS: int = 300

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def database_url(self) -> str:
        url = self.DATABASE_URL
        if url.startswith("file:"):
            return f"sqlite:///{url[5:]}"
        # Hosted Postgres providers still hand out the legacy scheme
        if url.startswith("postgres://"):
            return "postgresql://" + url[len("postgres://"):]
        return url

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def security_problems(self) -> List[str]:
        problems = []
        if self.SECRET_KEY in INSECURE_SECRET_KEYS:
            problems.append("SECRET_KEY is a well-known default; set a random value")
        if len(self.SECRET_KEY) < 32:
            problems.append("SECRET_KEY must be at least 32 characters long")
        if self.is_production and self.DEBUG:
            problems.append("DEBUG must be disabled in production")
        return problems

    def validate_security_settings(self) -> bool:
        """
        Refuse to start a production deployment with insecure settings.
        Outside production the same findings are only warnings.
        """
        problems = self.security_problems()
        if problems and self.is_production:
            raise ValueError("Insecure production settings: " + "; ".join(problems))
        for problem in problems:
            warnings.warn(problem, UserWarning)
        return not problems


settings = Settings()
settings.validate_security_settings()
