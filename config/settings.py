"""
Configuration & Settings
ASO Insight Dashboard
"""

from pydantic import BaseModel
from typing import Optional
import os


class Settings(BaseModel):
    # App
    APP_NAME: str = "ASO Insight Dashboard"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("ASO_DEBUG", "false").lower() == "true"

    # Database
    DATABASE_URL: str = os.getenv("ASO_DATABASE_URL", "sqlite:///./aso_insight.db")
    # seed rule/intent registries when the API starts (idempotent)
    SEED_ON_STARTUP: bool = os.getenv("ASO_SEED_ON_STARTUP", "true").lower() == "true"

    # Metadata fetching (iTunes lookup / App Store pages)
    ITUNES_LOOKUP_URL: str = "https://itunes.apple.com/lookup"
    APP_STORE_PAGE_URL: str = "https://apps.apple.com/{country}/app/id{app_id}"
    REQUEST_TIMEOUT: int = 30
    MAX_RETRIES: int = 3
    USER_AGENT: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Edge functions (AI chat, audits, competitive analysis)
    EDGE_FUNCTIONS_URL: str = os.getenv("ASO_EDGE_FUNCTIONS_URL", "http://localhost:54321/functions/v1")
    EDGE_FUNCTIONS_KEY: Optional[str] = os.getenv("ASO_EDGE_FUNCTIONS_KEY")
    EDGE_FUNCTION_TIMEOUT: int = 60

    # Ruleset / intent pattern caches
    RULESET_CACHE_TTL_SECONDS: int = 300
    INTENT_CACHE_TTL_SECONDS: int = 300

    # Drafts
    DRAFT_AUTOSAVE_DELAY_SECONDS: float = 2.0
    DRAFT_LOCAL_DIR: str = os.getenv("ASO_DRAFT_DIR", "./.drafts")

    # Override clamping
    MIN_WEIGHT_MULTIPLIER: float = 0.5
    MAX_WEIGHT_MULTIPLIER: float = 2.0

    # Competitor gap detection
    # KEYWORD_DENSITY_THRESHOLD: fraction of competitors that must use a
    # keyword before its absence from our metadata counts as a gap.
    KEYWORD_DENSITY_THRESHOLD: float = 0.5
    MAX_GAP_KEYWORDS: int = 25

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    # API Gateway stage prefix stripped by the Lambda handler, e.g. "/prod"
    LAMBDA_BASE_PATH: str = os.getenv("ASO_LAMBDA_BASE_PATH", "/")


settings = Settings()
