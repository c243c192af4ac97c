"""Application Configuration

Type-safe configuration using Pydantic Settings for environment variable handling.

Every field has a development default so the library and the test suite
import without a ``.env`` file. Routing policy is handed to the core as an
OrchestratorConfig (see OrchestratorConfig.from_settings); nothing in the
domain layer reads these settings directly.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # =============================================================================
    # APPLICATION
    # =============================================================================

    app_name: str = Field(default="switchboard", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    app_description: str = Field(
        default="Multi-agent request routing and session orchestration",
        alias="APP_DESCRIPTION",
    )
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # CORS Settings
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")
    cors_credentials: bool = Field(default=True, alias="CORS_CREDENTIALS")
    cors_methods: str = Field(default="GET,POST,PUT", alias="CORS_METHODS")
    cors_headers: str = Field(default="*", alias="CORS_HEADERS")

    # =============================================================================
    # ROUTING POLICY
    # =============================================================================

    confidence_threshold: float = Field(default=0.0, ge=0.0, le=1.0, alias="CONFIDENCE_THRESHOLD")
    default_agent_id: str | None = Field(default=None, alias="DEFAULT_AGENT_ID")
    use_first_agent_as_default: bool = Field(default=True, alias="USE_FIRST_AGENT_AS_DEFAULT")
    max_tool_cycles: int = Field(default=20, ge=0, alias="MAX_TOOL_CYCLES")
    max_history_messages: int | None = Field(default=200, ge=1, alias="MAX_HISTORY_MESSAGES")
    agent_timeout_seconds: float | None = Field(default=None, gt=0, alias="AGENT_TIMEOUT_SECONDS")

    # =============================================================================
    # AGENTS AND MODELS
    # =============================================================================

    # Agent Catalog
    agent_catalog_path: str = Field(
        default=str(Path(__file__).parent / "domain" / "agents.json"),
        alias="AGENT_CATALOG_PATH",
    )
    agent_model: str = Field(default="anthropic:claude-sonnet-4-5", alias="AGENT_MODEL")

    # Unset → keyword classifier built from the catalog
    classifier_model: str | None = Field(default=None, alias="CLASSIFIER_MODEL")

    # =============================================================================
    # STORAGE
    # =============================================================================

    # Redis - conversation history (unset → in-memory store)
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    history_ttl_seconds: int | None = Field(default=None, ge=1, alias="HISTORY_TTL_SECONDS")

    # Qdrant + Ollama - retrieval (unset QDRANT_URL → no retriever)
    qdrant_url: str | None = Field(default=None, alias="QDRANT_URL")
    qdrant_collection: str = Field(default="documents", alias="QDRANT_COLLECTION")
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")
    ollama_embedding_model: str = Field(default="nomic-embed-text", alias="OLLAMA_EMBEDDING_MODEL")

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.model_validate({})


settings = get_settings()
