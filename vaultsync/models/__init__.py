"""Domain models for the Vault card sync engine."""

from .card_profile import PROFILE_TAGS, CardProfile
from .config_models import (
    DatabaseConfig,
    EndpointConfig,
    MappingVariant,
    SourceConfig,
    SyncRules,
    SyncSettings,
    VariantRules,
)
from .error_record import ErrorRecord
from .job import DirectoryJobRegistry, Job, JobRegistry
from .override import Override, OverrideSet
from .processing_result import BatchSummary, Operation, OperationResult, PreviewResult, PreviewRow

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "EndpointConfig",
    "MappingVariant",
    "SourceConfig",
    "SyncRules",
    "SyncSettings",
    "VariantRules",
    # Processing models
    "CardProfile",
    "PROFILE_TAGS",
    "Override",
    "OverrideSet",
    "Operation",
    "OperationResult",
    "BatchSummary",
    "ErrorRecord",
    "PreviewRow",
    "PreviewResult",
    # Job seam
    "Job",
    "JobRegistry",
    "DirectoryJobRegistry",
]
