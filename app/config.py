from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Load env values for components that read os.environ directly (e.g., Google clients).
_backend_root = Path(__file__).resolve().parents[1]
load_dotenv(_backend_root / ".env", override=False)


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    DATABASE_URL: str = f"sqlite:///{_backend_root / 'campaign_studio.db'}"
    DB_POOL_SIZE: int = 10
    DB_POOL_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30

    BACKEND_CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    SUPABASE_JWT_SECRET: str | None = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"

    AI_PROVIDER: str = "gemini"
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    # Gemini cannot express tagged unions, so structured output stays off unless asked for.
    GEMINI_USE_RESPONSE_SCHEMA: bool = False
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    LLM_TEMPERATURE: float = 0.7
    LLM_REQUEST_TIMEOUT: int = 120
    LLM_REQUEST_RETRIES: int = 3
    LLM_MAX_TOKENS_GLOBAL: int = 32000

    APP_BASE_URL: str = "http://localhost:3000"
    RATE_LIMIT_DEFAULT_TIER: str = "pro"
    # Raw and rewritten provider output is written here when JSON repair fails (non-production only).
    JSON_REPAIR_DEBUG_DIR: str | None = None

    LANGFUSE_ENABLED: bool = False
    LANGFUSE_PUBLIC_KEY: str | None = None
    LANGFUSE_SECRET_KEY: str | None = None
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"
    LANGFUSE_ENVIRONMENT: str | None = None
    LANGFUSE_RELEASE: str | None = None
    LANGFUSE_SAMPLE_RATE: float = 1.0
    LANGFUSE_TIMEOUT_SECONDS: int = 20

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("AI_PROVIDER", "RATE_LIMIT_DEFAULT_TIER", mode="before")
    @classmethod
    def lower_choice(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
