"""Predictive organization engine: recording, matching, scoring, feedback."""

from .background import BackgroundRecorder, RecordRequest
from .explanations import ExplanationProvider, TemplateExplanationProvider, describe_pattern
from .feedback import FeedbackProcessor
from .folders import FolderDirectory, StaticFolderDirectory
from .matcher import TriggerMatcher
from .naming import NameGeneralizer
from .recorder import PatternRecorder
from .scoring import ConfidenceScorer, clamp_confidence, decay, reinforce
from .service import OrganizationEngine
from .suggestions import SuggestionEngine

__all__ = [
    "BackgroundRecorder",
    "RecordRequest",
    "ExplanationProvider",
    "TemplateExplanationProvider",
    "describe_pattern",
    "FeedbackProcessor",
    "FolderDirectory",
    "StaticFolderDirectory",
    "TriggerMatcher",
    "NameGeneralizer",
    "PatternRecorder",
    "ConfidenceScorer",
    "clamp_confidence",
    "decay",
    "reinforce",
    "OrganizationEngine",
    "SuggestionEngine",
]
