#!/usr/bin/env python3
"""Composition root: the one place where concrete components are wired together"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from scout.core.config import Settings, settings as default_settings
from scout.personalization.engine import PersonalizationEngine
from scout.personalization.interest_store import InterestVectorStore, SqlInterestVectorStore
from scout.personalization.schemas import WeightPolicy
from scout.places.services.catalog import CatalogSnapshot, CatalogSource, SqlCatalog
from scout.places.services.google_places import GooglePlaces
from scout.places.services.place_provider import GooglePlacesProvider, PlaceProvider
from scout.search.aggregator import SearchAggregator
from scout.search.debouncer import QueryDebouncer

logger = logging.getLogger(__name__)


@dataclass
class EngineComponents:
    catalog: CatalogSource
    snapshot: CatalogSnapshot
    provider: PlaceProvider
    store: InterestVectorStore
    aggregator: SearchAggregator
    personalization: PersonalizationEngine


def build_engine_components(
    config: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    catalog: Optional[CatalogSource] = None,
    provider: Optional[PlaceProvider] = None,
    store: Optional[InterestVectorStore] = None,
    policy: Optional[WeightPolicy] = None,
) -> EngineComponents:
    """
    Wire the search and personalization engines from settings.

    Any component passed in replaces the default one, which is how tests swap
    in in-memory catalogs and fake providers. Raises ConfigurationError when
    the Google Places provider is needed but no API key is configured.
    """
    config = config or default_settings

    if session_factory is None and (catalog is None or store is None):
        from scout.core.db import SessionLocal

        session_factory = SessionLocal

    catalog = catalog or SqlCatalog(session_factory)
    store = store or SqlInterestVectorStore(session_factory)
    if provider is None:
        client = GooglePlaces(
            api_key=config.google_maps_api_key,
            timeout=config.places_timeout_s,
            retries=config.places_max_retries,
            mock_mode=config.places_mock_mode,
        )
        provider = GooglePlacesProvider(
            client,
            language=config.places_language,
            region=config.places_region,
            details_concurrency=config.places_details_concurrency,
        )

    snapshot = CatalogSnapshot(catalog, ttl_seconds=config.catalog_snapshot_ttl_s)
    debouncer = QueryDebouncer(
        window_s=config.search_debounce_ms / 1000.0,
        maxsize=config.search_debounce_queue_size,
    )
    aggregator = SearchAggregator(snapshot, provider, debouncer=debouncer)
    personalization = PersonalizationEngine(
        catalog,
        store,
        policy=policy,
        feed_items_per_category=config.feed_items_per_category,
    )

    logger.info(
        f"Engine components ready (environment={config.environment}, "
        f"provider={type(provider).__name__}, store={type(store).__name__})"
    )
    return EngineComponents(
        catalog=catalog,
        snapshot=snapshot,
        provider=provider,
        store=store,
        aggregator=aggregator,
        personalization=personalization,
    )
