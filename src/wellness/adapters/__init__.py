"""Tracker adapters for the wellness engine.

Sample fetchers implement the ProviderFetcher ABC; activity feeds implement
the ActivityFeed ABC.

Available adapters:
    HealthExportFetcher - on-device health store (JSON export file)
    HttpActivityFeed    - third-party activity API (paged REST)
"""

from src.wellness.adapters.activity_feed import HttpActivityFeed
from src.wellness.adapters.health_export import HealthExportFetcher

__all__ = [
    "HealthExportFetcher",
    "HttpActivityFeed",
]

# Registry: export-file source → fetcher class
FETCHER_REGISTRY: dict[str, type] = {
    "health_store": HealthExportFetcher,
    "wearable_relay": HealthExportFetcher,
}


def get_fetcher(source_id: str) -> "type":
    """Return the fetcher class for a given source slug.

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in FETCHER_REGISTRY:
        raise KeyError(
            f"No fetcher registered for source '{source_id}'. "
            f"Available: {list(FETCHER_REGISTRY)}"
        )
    return FETCHER_REGISTRY[source_id]
