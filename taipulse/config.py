# taipulse/config.py

from typing import Dict
from enum import Enum
from pydantic_settings import BaseSettings

class Environment(str, Enum):
    DEV = "development"
    TEST = "test"
    PRODUCTION = "production"

class Settings(BaseSettings):
    # ==== Project Info ====
    PROJECT_NAME: str = "TaiPulse Analysis Core"
    VERSION: str = "1.0.0"
    ENVIRONMENT: Environment = Environment.DEV
    DEBUG: bool = False

    # ==== Logging ====
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # ==== Upstream Proxy ====
    # Relays /fugle/{sid}, /finmind and /yahoo to the real providers
    PROXY_BASE_URL: str = "http://localhost:3000/api/proxy"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # ==== Throttling ====
    MIN_REQUEST_GAP_SECONDS: float = 1.0
    PROVIDER_COOLDOWN_SECONDS: Dict[str, float] = {
        "fugle": 60.0,
        "yahoo": 60.0,
        "finmind": 300.0,
    }

    # ==== Caches ====
    QUOTE_CACHE_TTL_SECONDS: float = 30.0
    STATIC_CACHE_TTL_SECONDS: float = 4 * 60 * 60
    MARKET_TIMEZONE: str = "Asia/Taipei"
    SETTLEMENT_HOUR: int = 15
    NAME_CACHE_FILE: str = "stock_name_cache.json"

    # ==== History Lookbacks (days) ====
    PRICE_LOOKBACK_DAYS: int = 365
    PER_LOOKBACK_DAYS: int = 30
    CHIP_LOOKBACK_DAYS: int = 30
    FINANCIAL_LOOKBACK_DAYS: int = 730
    REVENUE_LOOKBACK_DAYS: int = 120

    # ==== Deep Scan ====
    DEEP_SCAN_BATCH_SIZE: int = 15
    DEEP_SCAN_DELAY_SECONDS: float = 2.5

    # ==== Market Pulse ====
    PULSE_SECTOR_LIMIT: int = 3
    PULSE_STOCKS_PER_SECTOR: int = 6
    PULSE_STOCK_DELAY_SECONDS: float = 1.0
    PULSE_SECTOR_DELAY_SECONDS: float = 2.0
    RECOMMENDATION_MIN_SCORE: int = 75
    RECOMMENDATION_LIMIT: int = 4

    # ==== Watchlist ====
    WATCHLIST_REFRESH_DELAY_SECONDS: float = 0.6

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    def model_post_init(self, __context):
        # Trailing slash breaks the joined proxy paths
        self.PROXY_BASE_URL = self.PROXY_BASE_URL.rstrip("/")

        if self.SETTLEMENT_HOUR < 0 or self.SETTLEMENT_HOUR > 23:
            raise RuntimeError("SETTLEMENT_HOUR must be between 0 and 23")

settings = Settings()
