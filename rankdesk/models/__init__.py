"""Database models for Rankdesk."""

from .brand import Brand, App, Platform, Role
from .backlink import (
    Backlink,
    BacklinkProspect,
    CompetitorImport,
    ContactMethod,
    LinkDirectoryDomain,
    ProspectStatus,
)
from .ranking import AppRanking, RankTracker, RankTrackerHistory

__all__ = [
    "Brand",
    "App",
    "Platform",
    "Role",
    "Backlink",
    "BacklinkProspect",
    "CompetitorImport",
    "ContactMethod",
    "LinkDirectoryDomain",
    "ProspectStatus",
    "AppRanking",
    "RankTracker",
    "RankTrackerHistory",
]
