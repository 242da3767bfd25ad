from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

aggregator_provider_requests_total = Counter(
    "aggregator_provider_requests_total",
    "Total upstream weather provider fetches",
    labelnames=["provider"],
)

aggregator_provider_errors_total = Counter(
    "aggregator_provider_errors_total",
    "Weather provider fetch failures by error kind",
    labelnames=["provider", "error_type"],
)

aggregator_provider_latency_seconds = Histogram(
    "aggregator_provider_latency_seconds",
    "Latency of weather provider fetches including retries",
    labelnames=["provider"],
    buckets=(0.1, 0.3, 0.5, 1, 2, 5, 10, 20, 30),
)

aggregator_cache_hits_total = Counter(
    "aggregator_cache_hits_total",
    "Forecast cache hits",
    labelnames=["provider"],
)

aggregator_cache_misses_total = Counter(
    "aggregator_cache_misses_total",
    "Forecast cache misses",
    labelnames=["provider"],
)

aggregator_cache_errors_total = Counter(
    "aggregator_cache_errors_total",
    "Forecast cache backend failures",
    labelnames=["operation"],
)

aggregator_cache_entries = Gauge(
    "aggregator_cache_entries",
    "Live forecast cache entries tracked by this process",
)

aggregator_requests_total = Counter(
    "aggregator_requests_total",
    "Aggregation requests by outcome",
    labelnames=["outcome"],
)

aggregator_rate_limit_rejections_total = Counter(
    "aggregator_rate_limit_rejections_total",
    "Fetches refused locally because a provider's rate limit was exhausted",
    labelnames=["provider"],
)
