"""Configuration management."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from echoes.core import constants


class Settings(BaseSettings):
    # API Keys
    google_api_key: SecretStr = SecretStr("")

    # Gemini endpoints and models
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    embedding_model: str = Field(default="text-embedding-004", description="Embedding model (768 dimensions)")
    generation_model: str = Field(default="gemini-1.5-flash", description="Model used for replies and summaries")
    embedding_dimensions: int = constants.EMBEDDING_DIMENSIONS
    truncate_oversized_embeddings: bool = Field(
        default=True,
        description="Keep the first N components of oversized stored embeddings instead of rejecting them",
    )

    # Neo4j
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: SecretStr = SecretStr("password")

    # Retrieval
    search_top_k: int = constants.SEARCH_TOP_K_DEFAULT
    search_min_similarity: float = constants.SEARCH_MIN_SIMILARITY_DEFAULT
    grounding_top_k: int = constants.GROUNDING_TOP_K_DEFAULT
    grounding_min_similarity: float = constants.GROUNDING_MIN_SIMILARITY_DEFAULT
    conversation_window: int = constants.CONVERSATION_WINDOW_DEFAULT
    prefer_summary_in_context: bool = False
    retrieval_timeout_seconds: float = 10.0
    http_timeout_seconds: float = 15.0

    # Post-processing
    enrichment_max_attempts: int = constants.ENRICHMENT_MAX_ATTEMPTS_DEFAULT
    enrichment_retry_delay_seconds: float = constants.ENRICHMENT_RETRY_DELAY_SECONDS_DEFAULT
    backfill_interval_minutes: int = constants.BACKFILL_INTERVAL_MINUTES_DEFAULT
    disable_backfill: bool = False

    # App config
    debug: bool = True
    service_name: str = "echoes"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # Ignore extra fields in .env file
    )


settings = Settings()
