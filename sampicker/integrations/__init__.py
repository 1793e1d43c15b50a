from __future__ import annotations

__all__: list[str] = [
    "AppListCatalogSource",
    "CommunityHtmlOwnershipSource",
    "CommunityStatsAchievementSource",
    "CommunityXmlOwnershipSource",
    "CompanionProcess",
    "CompanionProgressSource",
    "StaticCatalogSource",
    "WebApiAchievementSource",
    "WebApiOwnershipSource",
]

from sampicker.integrations.achievement_sources import CommunityStatsAchievementSource, WebApiAchievementSource
from sampicker.integrations.catalog_sources import AppListCatalogSource, StaticCatalogSource
from sampicker.integrations.companion import CompanionProcess, CompanionProgressSource
from sampicker.integrations.ownership_sources import (
    CommunityHtmlOwnershipSource,
    CommunityXmlOwnershipSource,
    WebApiOwnershipSource,
)
