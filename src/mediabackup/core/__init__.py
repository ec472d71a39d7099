"""Core module - Shared configuration, filename rules and types."""

from mediabackup.core.config import MIB, PipelineConfig, StorageConfig
from mediabackup.core.sanitize import sanitize_filename, transliterate
from mediabackup.core.types import MediaKind

__all__ = [
    # Config
    "MIB",
    "PipelineConfig",
    "StorageConfig",
    # Sanitize
    "sanitize_filename",
    "transliterate",
    # Types
    "MediaKind",
]
