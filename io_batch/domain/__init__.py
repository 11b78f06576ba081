"""
io_batch.domain -- Pure types for bulk status jobs.

ZERO I/O.  All types are frozen dataclasses.
"""

from io_batch.domain.types import (
    BulkAction,
    BulkItemResult,
    BulkJob,
    BulkJobStatus,
    BulkRunResult,
    can_request,
    normalize_target_ids,
)

__all__ = [
    "BulkAction",
    "BulkItemResult",
    "BulkJob",
    "BulkJobStatus",
    "BulkRunResult",
    "can_request",
    "normalize_target_ids",
]
