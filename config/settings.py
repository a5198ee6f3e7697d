from pydantic_settings import BaseSettings
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys
    OPENAI_API_KEY: Optional[str] = ""
    ANTHROPIC_API_KEY: Optional[str] = ""
    PERPLEXITY_API_KEY: Optional[str] = ""
    FIRECRAWL_API_KEY: Optional[str] = ""

    # Application Settings
    APP_NAME: str = "AI Citation Audit"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Provider Models
    OPENAI_MODEL: str = "gpt-4o"
    ANTHROPIC_MODEL: str = "claude-3-haiku-20240307"
    PERPLEXITY_MODEL: str = "sonar"
    PERPLEXITY_API_BASE: str = "https://api.perplexity.ai"
    PROVIDER_MAX_TOKENS: int = 1000
    PROVIDER_TEMPERATURE: float = 0.7
    PROVIDER_TIMEOUT_SECONDS: float = 60.0

    # Default providers to query (can be overridden per request)
    DEFAULT_PROVIDERS: List[str] = ["openai"]

    # Industry discovery (empty provider disables the provider call)
    INDUSTRY_DISCOVERY_PROVIDER: str = "perplexity"
    INDUSTRY_DISCOVERY_TIMEOUT_SECONDS: float = 20.0

    # Request limits
    MAX_PROMPTS_PER_REQUEST: int = 10
    ANALYSIS_DEADLINE_SECONDS: float = 180.0

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    MONTHLY_LIMITS: Dict[str, int] = {
        "free": 1,
        "starter": 10,
        "professional": 50,
        "enterprise": 400,
    }
    DEFAULT_PLAN: str = "free"
    ADMIN_ACCOUNT_IDS: List[str] = []

    # Competitor validation
    COMPETITOR_VALIDATION_DEADLINE_SECONDS: float = 15.0
    COMPETITOR_VALIDATION_TOP_N: int = 10
    MAX_VALIDATED_COMPETITORS: int = 5
    COMPETITOR_MIN_SHARED_KEYWORDS: int = 1  # 1 shared keyword validates
    CONTENT_FETCH_TIMEOUT_SECONDS: float = 10.0

    # Trial abuse guard
    TRIAL_COOLDOWN_DAYS: int = 90
    RISK_BLOCK_THRESHOLD: int = 50
    PAYMENT_METHOD_THRESHOLD: int = 25

    # Redis Settings
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_MAX_CONNECTIONS: int = 10
    REDIS_RETRY_BACKOFF_SECONDS: float = 30.0  # no reconnect attempts for this long after a failure
    RESULT_CACHE_TTL: int = 86400  # 24 hours

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
