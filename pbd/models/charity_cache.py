from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pbd.extensions import db

from .mixins import utcnow


class CachedCharity(db.Model):
    """Display metadata for a processor-side organization, refreshed lazily."""

    __tablename__ = "charity_cache"
    __table_args__ = (
        UniqueConstraint("platform", "organization_id", name="uq_charity_cache_platform_org"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    platform: Mapped[str] = mapped_column(db.String(20), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(db.String(120), nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(db.String(500), nullable=True)
    slug: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    last_updated: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)

    def is_fresh(self, ttl: timedelta, now: Optional[datetime] = None) -> bool:
        return bool(self.last_updated and self.last_updated > (now or utcnow()) - ttl)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "organizationId": self.organization_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "logoUrl": self.logo_url,
            "slug": self.slug,
            "isActive": self.is_active,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<CachedCharity {self.platform}:{self.organization_id} {self.name!r}>"
