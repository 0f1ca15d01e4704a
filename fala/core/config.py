"""Application configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults for development.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INITIAL_VERBS = (
    "Ser,Estar,Ter,Haver,Ir,Vir,Fazer,Dizer,Poder,Saber,Querer,Dever,Pôr,"
    "Trazer,Ver,Dar,Falar,Amar,Comer,Viver,Partir,Abrir,Fechar,Pedir,Ouvir,"
    "Ler,Escrever,Dormir,Sentir,Ficar,Trabalhar,Estudar,Pensar,Achar,Começar,"
    "Entender,Conhecer,Jogar,Correr,Andar,Voltar,Gostar,Ajudar,Mudar,Perder,"
    "Encontrar,Lembrar,Esquecer,Tentar,Usar"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========== Database (namespace store) ==========
    database_url: str = Field(
        default="sqlite+aiosqlite:///./fala.db",
        description="Async SQLAlchemy connection string for the cache store",
    )
    db_pool_size: int = Field(default=5, ge=1, le=20)
    db_max_overflow: int = Field(default=10, ge=0, le=50)
    db_pool_timeout: int = Field(default=30, ge=5, le=120)
    db_echo: bool = Field(default=False, description="Echo SQL queries")

    # ========== Content cache ==========
    cache_backend: Literal["sql", "redis", "memory"] = Field(
        default="sql",
        description="Where cache namespaces are persisted",
    )
    upstash_redis_rest_url: str = Field(default="", description="Upstash Redis REST URL")
    upstash_redis_rest_token: str = Field(default="", description="Upstash Redis REST Token")

    # ========== Prefetch ==========
    prefetch_startup_delay_seconds: float = Field(default=1.5, ge=0.0, le=60.0)
    prefetch_lookahead: int = Field(default=2, ge=0, le=10)
    initial_verbs_str: str = Field(
        default=DEFAULT_INITIAL_VERBS,
        alias="INITIAL_VERBS",
        description="Comma-separated verbs warmed at startup",
    )

    # ========== LLM Providers ==========
    gemini_api_key: str = Field(default="", description="Google Gemini API Key")
    openai_api_key: str = Field(default="", description="OpenAI API Key")
    default_llm_provider: Literal["gemini", "openai"] = "gemini"
    content_model: str = "gemini-2.5-flash"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Kore"
    generation_timeout_seconds: float = Field(default=60.0, gt=0.0, le=600.0)

    # ========== CORS ==========
    cors_origins_str: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        alias="CORS_ORIGINS",
        description="Comma-separated CORS origins",
    )

    # ========== Application ==========
    app_name: str = "Fala"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # ========== Computed Properties ==========
    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @computed_field
    @property
    def initial_verbs(self) -> list[str]:
        """Parse the startup verb list from comma-separated string."""
        return [verb.strip() for verb in self.initial_verbs_str.split(",") if verb.strip()]

    @computed_field
    @property
    def redis_available(self) -> bool:
        """Check if Redis credentials are configured."""
        return bool(self.upstash_redis_rest_url and self.upstash_redis_rest_token)

    @computed_field
    @property
    def processed_database_url(self) -> str:
        """Convert database URL for asyncpg compatibility with Neon."""
        url = self.database_url
        # Neon uses sslmode, asyncpg uses ssl
        replacements = [
            ("sslmode=require", "ssl=require"),
            ("sslmode=prefer", "ssl=prefer"),
            ("sslmode=verify-full", "ssl=verify-full"),
        ]
        for old, new in replacements:
            url = url.replace(old, new)
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
