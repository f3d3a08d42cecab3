"""Service modules for Rankdesk."""

from .reconciler import DirectorySync, reconcile
from .import_classifier import CompetitorImporter, classify
from .rank_statistics import RankObservation, compute_statistics
from .change_detector import detect_changes, summarize_changes
from .rank_tracking import RankFetcher, RankHistory, RankTrackerService, SemrushClient
from .app_rankings import AlertService, AppRankingUploader

__all__ = [
    "DirectorySync",
    "reconcile",
    "CompetitorImporter",
    "classify",
    "RankObservation",
    "compute_statistics",
    "detect_changes",
    "summarize_changes",
    "RankFetcher",
    "RankHistory",
    "RankTrackerService",
    "SemrushClient",
    "AlertService",
    "AppRankingUploader",
]
