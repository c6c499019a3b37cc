"""Configuration management for the portfolio knowledge assistant."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (required)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Environment
    ASSISTANT_ENV: str = Field(default="dev", description="Environment: dev, test, prod")

    # Admin access (admin routes are refused while unset)
    ADMIN_API_KEY: str | None = Field(default=None, description="X-API-Key for admin routes")

    # Answer generation
    CHAT_MODEL: str = Field(default="gpt-4o-mini", description="Model for answers")
    CHAT_TEMPERATURE: float = Field(default=0.7, description="Answer sampling temperature")
    CHAT_MAX_TOKENS: int = Field(default=300, description="Max tokens per answer")
    LLM_TIMEOUT_SECONDS: float = Field(
        default=30.0, description="Request timeout for every completion call"
    )

    # Retrieval
    CONTEXT_DOC_PREFIX_CHARS: int = Field(
        default=800, description="Chars of each document placed into context"
    )
    HISTORY_TURNS: int = Field(default=5, description="Prior session turns sent to the model")
    KNOWLEDGE_FALLBACK_DIR: str = Field(
        default="knowledge", description="Raw-file corpus used when the store is down"
    )
    LOG_TURNS_AS_TRAINING_PAIRS: bool = Field(
        default=False, description="Copy every answered turn into training_pairs"
    )

    # Evaluation
    JUDGE_MODEL: str = Field(default="gpt-4o-mini", description="Model for judged rubrics")
    EVAL_CRITERIA: list[str] = Field(
        default=["correctness", "helpfulness", "relevance", "clarity", "conciseness"],
        description="Active evaluation criteria",
    )
    EVAL_MAX_ATTEMPTS: int = Field(default=3, description="Evaluation attempts before giving up")
    EVAL_RETRY_BASE_DELAY_SECONDS: float = Field(
        default=1.0, description="First retry delay, doubled per attempt"
    )

    # Learning loop
    POOR_QUALITY_THRESHOLD: float = Field(
        default=0.7, description="Evaluations below this overall score are mined"
    )
    EXTRACTION_BATCH_SIZE: int = Field(
        default=20, description="Evaluations / feedback rows mined per batch; a run drains every batch"
    )
    FEEDBACK_INSIGHT_IMPORTANCE: int = Field(
        default=8, description="Importance assigned to user-reported corrections"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
