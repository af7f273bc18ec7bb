# taipulse/dependencies.py

import logging
from dataclasses import dataclass
from typing import Optional

from taipulse.config import Settings, settings as default_settings
from taipulse.core.analysis.compositor import AnalysisCompositor
from taipulse.core.analysis.market_pulse import MarketPulseService
from taipulse.core.market.data_client import MarketDataClient
from taipulse.core.market.market_clock import MarketClock
from taipulse.core.market.quote_cache import QuoteCache
from taipulse.core.market.static_cache import StaticAnalysisCache
from taipulse.core.market.throttle import ProviderCooldowns, ThrottledScheduler
from taipulse.lifecycle.deep_scan import DeepScanScheduler
from taipulse.lifecycle.market_scanner import MarketScanner
from taipulse.services.name_registry import NameRegistry
from taipulse.services.watchlist import WatchlistStore
from taipulse.utils.metrics import initialize_metrics

logger = logging.getLogger(__name__)


@dataclass
class TaiPulseContext:
    """Every piece of shared state, owned by one object and wired once."""
    settings: Settings
    clock: MarketClock
    scheduler: ThrottledScheduler
    quote_cache: QuoteCache
    static_cache: StaticAnalysisCache
    names: NameRegistry
    client: MarketDataClient
    compositor: AnalysisCompositor
    pulse: MarketPulseService
    watchlist: WatchlistStore
    deep_scan: DeepScanScheduler
    scanner: MarketScanner

    async def close(self) -> None:
        """Stops background work, then releases the HTTP client."""
        await self.deep_scan.stop()
        await self.scheduler.close()
        await self.client.close()
        logger.info("TaiPulse context closed")


def build_context(config: Optional[Settings] = None) -> TaiPulseContext:
    config = config or default_settings

    clock = MarketClock(config.MARKET_TIMEZONE, config.SETTLEMENT_HOUR)
    cooldowns = ProviderCooldowns(config.PROVIDER_COOLDOWN_SECONDS)
    scheduler = ThrottledScheduler(config.MIN_REQUEST_GAP_SECONDS, cooldowns)
    quote_cache = QuoteCache(config.QUOTE_CACHE_TTL_SECONDS)
    static_cache = StaticAnalysisCache(clock, config.STATIC_CACHE_TTL_SECONDS)
    names = NameRegistry(config.NAME_CACHE_FILE)

    client = MarketDataClient(
        scheduler, quote_cache, names, clock,
        base_url=config.PROXY_BASE_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
    compositor = AnalysisCompositor(client, static_cache, names, clock)
    pulse = MarketPulseService(
        compositor, clock,
        sector_limit=config.PULSE_SECTOR_LIMIT,
        stocks_per_sector=config.PULSE_STOCKS_PER_SECTOR,
        stock_delay=config.PULSE_STOCK_DELAY_SECONDS,
        sector_delay=config.PULSE_SECTOR_DELAY_SECONDS,
        min_score=config.RECOMMENDATION_MIN_SCORE,
        limit=config.RECOMMENDATION_LIMIT,
    )
    watchlist = WatchlistStore()
    deep_scan = DeepScanScheduler(
        compositor, watchlist,
        batch_size=config.DEEP_SCAN_BATCH_SIZE,
        delay=config.DEEP_SCAN_DELAY_SECONDS,
    )
    scanner = MarketScanner(
        compositor, pulse, watchlist, deep_scan,
        refresh_delay=config.WATCHLIST_REFRESH_DELAY_SECONDS,
    )

    initialize_metrics(config.ENVIRONMENT.value, config.VERSION)
    logger.info(f"TaiPulse context ready (proxy={config.PROXY_BASE_URL})")

    return TaiPulseContext(
        settings=config,
        clock=clock,
        scheduler=scheduler,
        quote_cache=quote_cache,
        static_cache=static_cache,
        names=names,
        client=client,
        compositor=compositor,
        pulse=pulse,
        watchlist=watchlist,
        deep_scan=deep_scan,
        scanner=scanner,
    )
