"""Shared types for mediabackup.

This module defines enums used by both item sources and the upload pipeline.
"""

from __future__ import annotations

from enum import Enum


class MediaKind(str, Enum):
    """Kind of media an item holds.

    Videos are large and usually need an export step, so they are sent
    through the resumable transport.
    """

    IMAGE = "image"
    VIDEO = "video"
