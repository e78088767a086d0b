"""Soft delete support shared by workflow models.

Rows are flagged rather than removed so that enrollment history survives
withdrawal and configuration changes. Restoring is always an explicit call.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime


class SoftDeleteMixin:
    """Adds ``is_deleted``/``deleted_at`` columns and helpers."""

    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    def soft_delete(self) -> None:
        """Mark this record as deleted."""
        self.is_deleted = True
        self.deleted_at = datetime.utcnow()

    def restore(self) -> None:
        """Restore a soft-deleted record."""
        self.is_deleted = False
        self.deleted_at = None

    @classmethod
    def not_deleted(cls):
        """Filter clause that excludes soft-deleted rows."""
        return cls.is_deleted.is_(False)
