from typing import List, Optional
from pydantic import PostgresDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "ClaimCoach Backend"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/v1"
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "claimcoach"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # full override, e.g. sqlite+aiosqlite:///./claimcoach.db

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        ))

    # Carrier estimate uploads
    UPLOAD_DIR: str = "./uploads"
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024

    # Parse polling
    PARSE_POLL_INTERVAL_SECONDS: float = 3.0
    PARSE_POLL_BACKOFF: float = 1.0  # 1.0 = fixed interval
    PARSE_POLL_MAX_INTERVAL_SECONDS: float = 30.0
    PARSE_POLL_TIMEOUT_SECONDS: float = 300.0

    # Upper bound for any single collaborator call (estimate, analysis, letters)
    EXTERNAL_CALL_TIMEOUT_SECONDS: Optional[float] = 180.0

    # LLM providers: "ollama" | "openai" | "anthropic"
    LLM_PROVIDER_PRIMARY: str = "ollama"
    LLM_PROVIDER_WRITER: str = "ollama"

    # Ollama
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL_PRIMARY: str = "gpt-oss:20b"
    OLLAMA_MODEL_WRITER: str = "gemma3:12b"

    # OpenAI
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL_PRIMARY: str = "gpt-4.1"
    OPENAI_MODEL_WRITER: str = "gpt-4.1-mini"

    # Anthropic
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL_PRIMARY: str = "claude-sonnet-4-5"
    ANTHROPIC_MODEL_WRITER: str = "claude-sonnet-4-5"

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")

settings = Settings()
