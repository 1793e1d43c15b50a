# sampicker/services/ownership_service.py

"""Service that determines the owned-games list through a fallback chain.

Flow:
    1. Web API and community XML (both queried when usable, then merged)
    2. Community HTML scrape, only if neither of the above produced data
    3. Static catalog, then the Steam app list, filtered by native ownership
    4. Nothing worked: OwnershipUnavailableError, the caller shows a default list
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from sampicker.core.credentials import Credentials
from sampicker.core.errors import FetchResult, OwnershipUnavailableError
from sampicker.core.game import GameRecord, OwnedGameCandidate, resolve_image_url
from sampicker.core.scan_log import append_scan_log
from sampicker.integrations.catalog_sources import AppListCatalogSource, StaticCatalogSource
from sampicker.integrations.ownership_sources import (
    CommunityHtmlOwnershipSource,
    CommunityXmlOwnershipSource,
    WebApiOwnershipSource,
)
from sampicker.services.merge import finalize_candidates, merge_candidates

logger = logging.getLogger("sampicker.ownership_service")

__all__ = ["OwnershipResult", "OwnershipService", "OwnershipSource"]

IsAppOwned = Callable[[int], bool]
GetAppData = Callable[[int, str], str]


class OwnershipSource(Protocol):
    name: str

    def fetch(self, steam_id: int, credentials: Credentials | None = None) -> FetchResult: ...


@dataclass
class OwnershipResult:
    """Owned games plus a record of which sources produced them.

    Attributes:
        games: One record per owned app, sorted by app id.
        sources: Names of the sources whose data was used.
        failures: Source name to failure detail for sources that failed.
    """

    games: list[GameRecord]
    sources: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class OwnershipService:
    """Runs the ownership fallback chain and builds game records.

    Attributes:
        primary_sources: Account sources queried together and merged.
        scrape_source: Last account-scoped resort.
        catalog_sources: Unscoped catalogs, tried in order.
        is_app_owned: Native ownership check, or None when unavailable.
        get_app_data: Native metadata lookup, or None when unavailable.
    """

    def __init__(
        self,
        primary_sources: list[OwnershipSource] | None = None,
        scrape_source: OwnershipSource | None = None,
        catalog_sources: list[OwnershipSource] | None = None,
        is_app_owned: IsAppOwned | None = None,
        get_app_data: GetAppData | None = None,
        timeout: float = 10.0,
    ) -> None:
        if primary_sources is None:
            primary_sources = [WebApiOwnershipSource(timeout), CommunityXmlOwnershipSource(timeout)]
        if catalog_sources is None:
            catalog_sources = [StaticCatalogSource(timeout), AppListCatalogSource(timeout)]
        self.primary_sources = primary_sources
        self.scrape_source = scrape_source if scrape_source is not None else CommunityHtmlOwnershipSource(timeout)
        self.catalog_sources = catalog_sources
        self.is_app_owned = is_app_owned
        self.get_app_data = get_app_data

    def load_owned_games(self, steam_id: int, credentials: Credentials | None = None) -> OwnershipResult:
        """Determines the owned games of an account.

        Args:
            steam_id: SteamID64 of the active account, 0 if unknown.
            credentials: Snapshot of the API key and community cookies.

        Returns:
            OwnershipResult with at least one game.

        Raises:
            OwnershipUnavailableError: If every source failed or nothing
                could be confirmed as owned.
        """
        merged: dict[int, OwnedGameCandidate] = {}
        result = OwnershipResult(games=[])

        if steam_id:
            for source in self.primary_sources:
                self._try_source(source, steam_id, credentials, merged, result)

            if not result.sources:
                self._try_source(self.scrape_source, steam_id, credentials, merged, result)

        if result.sources:
            result.games = self._build_records(finalize_candidates(merged))
        elif self.is_app_owned is not None:
            for catalog in self.catalog_sources:
                if self._try_source(catalog, steam_id, credentials, merged, result):
                    result.games = self._build_records(finalize_candidates(merged))
                    break
        else:
            append_scan_log(0, "No native ownership check available; skipping catalog fallback.")

        if not result.games:
            detail = "; ".join(f"{name}: {reason}" for name, reason in result.failures.items())
            raise OwnershipUnavailableError(detail or "no owned games found")

        logger.info("Loaded %d owned games from %s", len(result.games), ", ".join(result.sources))
        return result

    @staticmethod
    def _try_source(
        source: OwnershipSource,
        steam_id: int,
        credentials: Credentials | None,
        merged: dict[int, OwnedGameCandidate],
        result: OwnershipResult,
    ) -> bool:
        fetched = source.fetch(steam_id, credentials)
        if not fetched.succeeded:
            logger.info("%s unavailable: %s", source.name, fetched.detail or fetched.failure.value)
            result.failures[source.name] = fetched.detail or fetched.failure.value
            return False
        merge_candidates(merged, fetched.value or [])
        result.sources.append(source.name)
        return True

    def _build_records(self, candidates: list[OwnedGameCandidate]) -> list[GameRecord]:
        """Applies the native ownership check and fills names and images."""
        records: list[GameRecord] = []
        for candidate in candidates:
            if self.is_app_owned is not None and not self.is_app_owned(candidate.app_id):
                continue
            record = candidate.to_record()
            if self.get_app_data is not None:
                native_name = self.get_app_data(candidate.app_id, "name")
                if native_name:
                    record.name = native_name
                record.image_url = resolve_image_url(candidate.app_id, self.get_app_data)
            records.append(record)
        return records

    def default_games(self, defaults: tuple[tuple[int, str], ...]) -> list[GameRecord]:
        """Records for the fallback list shown when ownership is unavailable.

        Args:
            defaults: (app_id, category) pairs.

        Returns:
            Game records for the defaults that pass the ownership check.
        """
        candidates = [
            OwnedGameCandidate(app_id=app_id, has_stats_link=True, category=category) for app_id, category in defaults
        ]
        return self._build_records(finalize_candidates(merge_candidates({}, candidates)))
