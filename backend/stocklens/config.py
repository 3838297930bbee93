from pydantic_settings import BaseSettings
from typing import List
from pydantic import model_validator


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./stocklens.db"
    ENVIRONMENT: str = "development"
    AUTO_CREATE_TABLES: bool = True
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    DEBUG: bool = True
    APP_NAME: str = "StockLens"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    ENABLE_REQUEST_ID: bool = True
    ENABLE_REQUEST_LOGGING: bool = True

    # AI strategy selection
    AI_ENABLED: bool = True
    AI_ACTIVE_STRATEGY: str = "advanced_analysis"
    AI_FALLBACK_STRATEGY: str = ""
    ML_ENABLED: bool = True
    OLLAMA_ENABLED: bool = True
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "phi3"
    OLLAMA_TIMEOUT_SECONDS: float = 30.0
    OLLAMA_PROBE_TIMEOUT_SECONDS: float = 5.0
    OLLAMA_TEMPERATURE: float = 0.3
    OLLAMA_TOP_P: float = 0.9
    OLLAMA_NUM_PREDICT: int = 1000

    # Analysis and reporting
    ANALYSIS_MAX_RECORDS: int = 1000
    LOW_STOCK_THRESHOLD: int = 10
    REPORT_CACHE_TTL_SECONDS: int = 300
    REPORT_CACHE_MAX_ENTRIES: int = 50

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in {"prod", "production"}

    @model_validator(mode="after")
    def validate_production_safety(self):
        if self.AI_FALLBACK_STRATEGY and self.AI_FALLBACK_STRATEGY == self.AI_ACTIVE_STRATEGY:
            raise ValueError("AI_FALLBACK_STRATEGY must differ from AI_ACTIVE_STRATEGY.")

        if not self.is_production:
            return self

        if "sqlite" in self.DATABASE_URL.lower():
            raise ValueError("SQLite is not allowed when ENVIRONMENT is production.")

        if self.AUTO_CREATE_TABLES:
            raise ValueError("AUTO_CREATE_TABLES must be false in production; provision the schema explicitly.")

        return self


settings = Settings()
