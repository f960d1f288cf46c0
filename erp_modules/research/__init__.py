"""Research contributions, authors, incentive crediting and progress trackers."""

from erp_modules.research.authors import AuthorRegistry
from erp_modules.research.config import ResearchConfig
from erp_modules.research.lifecycle import ContributionLifecycleManager
from erp_modules.research.models import (
    Actor,
    AttachmentRef,
    AuthorDraft,
    Contribution,
    ContributionAuthor,
    ContributionStatus,
    EditSuggestion,
    ProgressTrackerItem,
    PublicationType,
    StatusHistoryEntry,
    SubmissionPackage,
    SuggestionInput,
    SuggestionStatus,
    TrackerHistoryEntry,
    TrackerStatus,
)
from erp_modules.research.progress import ProgressTracker

__all__ = [
    "Actor",
    "AttachmentRef",
    "AuthorDraft",
    "AuthorRegistry",
    "Contribution",
    "ContributionAuthor",
    "ContributionLifecycleManager",
    "ContributionStatus",
    "EditSuggestion",
    "ProgressTracker",
    "ProgressTrackerItem",
    "PublicationType",
    "ResearchConfig",
    "StatusHistoryEntry",
    "SubmissionPackage",
    "SuggestionInput",
    "SuggestionStatus",
    "TrackerHistoryEntry",
    "TrackerStatus",
]
