"""ORM models for bulk status jobs."""

from io_batch.models.bulk import BulkItemModel, BulkJobModel

__all__ = ["BulkItemModel", "BulkJobModel"]
