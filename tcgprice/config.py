"""
TCG Price Aggregator - Configuration & Constants

Every credential, endpoint, TTL, delay and retry knob lives here. No
hardcoded values in adapter or orchestration logic.

Usage:
    from tcgprice.config import settings
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SourceKind(str, Enum):
    """How a platform is queried."""
    API = "api"
    CRAWLER = "crawler"


class ObservationSource(str, Enum):
    """Provenance of a PriceObservation. FALLBACK must be preserved end-to-end."""
    API = "api"
    CRAWLER = "crawler"
    FALLBACK = "fallback"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for the price aggregator.

    Loads from environment variables with fallback defaults.
    An API adapter is active only when its credentials are present;
    crawler adapters are always active.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # -----------------------------------------------------------------------
    # API Keys
    # -----------------------------------------------------------------------
    TCGPLAYER_API_KEY: str = ""
    TCGPLAYER_BASE_URL: str = "https://api.tcgplayer.com/v1.39.0"

    # eBay Browse API (OAuth2 client credentials)
    EBAY_APP_ID: str = ""
    EBAY_CERT_ID: str = ""
    EBAY_OAUTH_URL: str = "https://api.ebay.com/identity/v1/oauth2/token"
    EBAY_BROWSE_URL: str = "https://api.ebay.com/buy/browse/v1"
    EBAY_MARKETPLACE_ID: str = "EBAY_US"

    CARDMARKET_APP_TOKEN: str = ""
    CARDMARKET_BASE_URL: str = "https://api.cardmarket.com/ws/v2.0"

    PRICECHARTING_API_KEY: str = ""
    PRICECHARTING_BASE_URL: str = "https://www.pricecharting.com/api"

    JUSTTCG_API_KEY: str = ""

    # -----------------------------------------------------------------------
    # Crawler identity & politeness
    # -----------------------------------------------------------------------
    CRAWLER_USER_AGENT: str = "TCGAssistant/1.0 (+https://tcg-assistant.com/bot)"
    CRAWLER_AGENT_NAME: str = "TCGAssistant"
    CRAWLER_ACCEPT_LANGUAGE: str = "ja-JP,ja;q=0.9,en;q=0.8"
    ROBOTS_TIMEOUT_SECONDS: float = 10.0
    DEFAULT_CRAWL_DELAY_MS: int = 2000          # Used when robots.txt can't be read
    MIN_CRAWL_DELAY_MS: int = 1000              # Floor for any declared Crawl-delay
    CRAWLER_REQUEST_TIMEOUT_SECONDS: float = 15.0
    CRAWLER_MAX_RESULTS: int = 20
    CRAWLER_DETAIL_LIMIT: int = 5               # Listings enriched with detail pages
    CRAWLER_ENRICH_BUDGET_RATIO: float = 0.8    # Share of the attempt timeout detail pages may use
    CRAWLER_FALLBACK_ENABLED: bool = True

    MERCARI_BASE_URL: str = "https://jp.mercari.com"
    SNKRDUNK_BASE_URL: str = "https://snkrdunk.com"

    # -----------------------------------------------------------------------
    # Cache
    # -----------------------------------------------------------------------
    PRICE_CACHE_TTL_SECONDS: int = 1800         # 30 minutes
    CRAWLER_CACHE_TTL_SECONDS: int = 1800       # 30 minutes
    ENABLE_PERSISTENT_CACHE: bool = False
    DATABASE_URL: str = "sqlite+aiosqlite:///./tcgprice_cache.db"

    # -----------------------------------------------------------------------
    # Retry & timeouts
    # -----------------------------------------------------------------------
    DEFAULT_MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0       # wait = base * attempt_index
    DEFAULT_TIMEOUT_MS: int = 30000

    # -----------------------------------------------------------------------
    # Currency
    # -----------------------------------------------------------------------
    DEFAULT_CURRENCY: str = "USD"
    EUR_USD_RATE: Decimal = Decimal("1.08")     # 1 EUR = 1.08 USD
    JPY_USD_RATE: Decimal = Decimal("0.0067")   # 1 JPY = 0.0067 USD

    # -----------------------------------------------------------------------
    # Logging
    # -----------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"


# Singleton instance
settings = Settings()
