# taipulse/utils/metrics.py
"""
Prometheus metrics for the analysis core.
Module-level collectors; the surrounding application decides whether and
where to expose them.
"""
import time
import sys
import logging
from contextlib import contextmanager
from datetime import datetime
from prometheus_client import Counter, Histogram, Gauge, Info

logger = logging.getLogger(__name__)

# ============================================
# 1. UPSTREAM PROVIDERS
# ============================================

provider_requests_total = Counter(
    'taipulse_provider_requests_total',
    'Upstream provider requests by outcome',
    ['provider', 'status']
)

provider_cooldowns_total = Counter(
    'taipulse_provider_cooldowns_total',
    'Rate-limit cooldowns triggered per provider',
    ['provider']
)

provider_skipped_total = Counter(
    'taipulse_provider_skipped_total',
    'Requests skipped because the provider was cooling down',
    ['provider']
)

# ============================================
# 2. SCHEDULER & CACHES
# ============================================

throttle_queue_depth = Gauge(
    'taipulse_throttle_queue_depth',
    'Tasks waiting in the throttled request queue'
)

cache_lookups_total = Counter(
    'taipulse_cache_lookups_total',
    'Cache lookups by tier and result',
    ['tier', 'result']
)

# ============================================
# 3. ANALYSIS
# ============================================

analysis_duration = Histogram(
    'taipulse_analysis_duration_seconds',
    'Time taken to compose one analysis',
    ['mode'],
    buckets=[0.01, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0]
)

deep_scan_processed_total = Counter(
    'taipulse_deep_scan_processed_total',
    'Symbols upgraded by the deep scan scheduler',
    ['status']
)

deep_scan_pending = Gauge(
    'taipulse_deep_scan_pending',
    'Symbols waiting for a deep scan'
)

system_info = Info('taipulse_system', 'System information')


def initialize_metrics(environment: str, version: str) -> None:
    system_info.info({
        'environment': environment,
        'version': version,
        'python_version': sys.version.split()[0],
        'start_time': datetime.now().isoformat(),
    })
    logger.info(f"Metrics initialized for {environment} v{version}")


@contextmanager
def measure_duration(metric: Histogram, **labels):
    """Context manager to measure code block duration"""
    start = time.time()
    try:
        yield
    finally:
        metric.labels(**labels).observe(time.time() - start)
