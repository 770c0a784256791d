"""
Charity cache: read-through store of processor organization metadata.

Rows are refreshed lazily when older than ``CHARITY_CACHE_TTL_HOURS``. If the
processor is unreachable a stale row is served rather than failing the page.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy import or_, select

from pbd.errors import GatewayTransportError, ValidationError
from pbd.extensions import db, with_db_retry
from pbd.gateways import GatewayRegistry, OrganizationDetails
from pbd.models import CachedCharity, Platform, utcnow

log = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_CACHED_RESULTS = 50

PRIORITY_CHARITY_IDS = ("2050", "183092", "114015", "2357", "2423")

ESSENTIAL_SEARCH_TERMS = ("cancer research", "children", "rspca", "red cross", "beyond blue")
ESSENTIAL_RESULTS_PER_TERM = 5

FULL_SEARCH_TERMS = (
    # health
    "cancer research", "cancer council", "heart foundation", "diabetes",
    "mental health", "beyond blue", "lifeline", "headspace",
    # children & youth
    "children", "kids", "child", "youth", "starlight", "make a wish", "save the children",
    # animals
    "rspca", "animal", "wildlife", "dog", "cat", "rescue",
    # environment
    "environment", "conservation", "greenpeace", "wwf",
    # community
    "homeless", "salvation army", "red cross", "oxfam", "community", "food", "housing",
    # education
    "education", "school", "literacy", "university",
    # disability
    "disability", "autism", "vision", "hearing",
    # indigenous
    "indigenous", "aboriginal", "reconciliation",
    # international aid
    "world vision", "unicef", "aid", "poverty", "water",
)
FULL_RESULTS_PER_TERM = 10

POPULATE_MODES = ("essential", "full")


def generate_slug(name: str) -> str:
    s = (name or "").lower()
    s = re.sub(r"[^a-z0-9\s-]", "", s)
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


@dataclass
class PopulateSummary:
    mode: str
    priority_synced: int = 0
    search_synced: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.priority_synced + self.search_synced

    def as_dict(self) -> Dict[str, object]:
        return {
            "mode": self.mode,
            "priorityResults": self.priority_synced,
            "searchResults": self.search_synced,
            "totalCharities": self.total,
            "errors": list(self.errors),
        }


class CharityCache:
    def __init__(
        self,
        registry: GatewayRegistry,
        *,
        ttl: timedelta = timedelta(hours=24),
        populate_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.registry = registry
        self.ttl = ttl
        self.populate_delay = populate_delay
        self._sleep = sleep

    @classmethod
    def from_app(cls, registry: GatewayRegistry) -> "CharityCache":
        cfg = current_app.config
        return cls(
            registry,
            ttl=timedelta(hours=int(cfg.get("CHARITY_CACHE_TTL_HOURS", 24))),
            populate_delay=float(cfg.get("POPULATE_DELAY_SECONDS", 0.5)),
        )

    # ---- reads -----------------------------------------------------------
    def find(self, platform: str, organization_id: str) -> Optional[CachedCharity]:
        return db.session.execute(
            select(CachedCharity).where(
                CachedCharity.platform == platform,
                CachedCharity.organization_id == str(organization_id),
            )
        ).scalar_one_or_none()

    def get_or_sync(
        self,
        platform: str,
        organization_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[CachedCharity]:
        """
        Return cached metadata, refreshing from the processor when stale.

        None means the processor has no such organization. Transport errors
        fall back to a stale row when one exists, otherwise propagate.
        """
        row = self.find(platform, organization_id)
        if row is not None and row.is_active and row.is_fresh(self.ttl, now):
            return row

        client = self.registry.get(platform)
        try:
            details = client.lookup_organization(str(organization_id))
        except GatewayTransportError as e:
            if row is not None:
                log.warning(
                    "Serving stale charity %s:%s (gateway error: %s)", platform, organization_id, e.message
                )
                return row
            raise

        if details is None:
            if row is not None and row.is_active:
                row.is_active = False
                row.last_updated = now or utcnow()
                db.session.commit()
            return None

        return self.sync(platform, details, now=now)

    def search_cached(self, query: str, limit: int = 20) -> List[CachedCharity]:
        q = (query or "").strip()
        if len(q) < MIN_QUERY_LENGTH:
            raise ValidationError(
                f"Search query must be at least {MIN_QUERY_LENGTH} characters",
                details={"q": q},
            )
        limit = max(1, min(int(limit), MAX_CACHED_RESULTS))
        pattern = f"%{q}%"
        stmt = (
            select(CachedCharity)
            .where(
                CachedCharity.is_active.is_(True),
                or_(
                    CachedCharity.name.ilike(pattern),
                    CachedCharity.description.ilike(pattern),
                    CachedCharity.category.ilike(pattern),
                ),
            )
            .order_by(CachedCharity.name.asc())
            .limit(limit)
        )
        return list(db.session.execute(stmt).scalars())

    # ---- writes ----------------------------------------------------------
    def sync(
        self,
        platform: str,
        details: OrganizationDetails,
        *,
        now: Optional[datetime] = None,
    ) -> CachedCharity:
        """Idempotent upsert keyed by (platform, organization_id)."""

        @with_db_retry(retries=2, backoff=0.1)
        def _upsert() -> CachedCharity:
            row = self.find(platform, details.organization_id)
            if row is None:
                row = CachedCharity(platform=platform, organization_id=details.organization_id)
                db.session.add(row)
            row.name = details.name or row.name or f"Charity {details.organization_id}"
            row.description = details.description
            row.category = details.category
            row.logo_url = details.logo_url
            row.slug = generate_slug(row.name)
            row.is_active = True
            row.last_updated = now or utcnow()
            db.session.commit()
            return row

        row = _upsert()
        log.debug("Synced charity %s:%s (%s)", platform, row.organization_id, row.name)
        return row

    def force_sync(self, platform: str, organization_id: str) -> Optional[CachedCharity]:
        details = self.registry.get(platform).lookup_organization(str(organization_id))
        if details is None:
            return None
        return self.sync(platform, details)

    def validate(self, platform: str, organization_id: str) -> Dict[str, object]:
        client = self.registry.get(platform)
        if not client.validate_organization_id(str(organization_id)):
            return {"valid": False, "charity": None}
        row = self.get_or_sync(platform, organization_id)
        return {"valid": row is not None, "charity": row.to_dict() if row else None}

    def search_and_sync(self, platform: str, query: str, max_results: int) -> List[CachedCharity]:
        results = self.registry.get(platform).search_organizations(query, max_results)
        return [self.sync(platform, details) for details in results if details.organization_id]

    def populate(self, mode: str = "essential", platform: str = Platform.JUSTGIVING) -> PopulateSummary:
        if mode not in POPULATE_MODES:
            raise ValidationError(f"Unknown populate mode '{mode}'", details={"modes": list(POPULATE_MODES)})

        if mode == "full":
            terms, per_term = FULL_SEARCH_TERMS, FULL_RESULTS_PER_TERM
        else:
            terms, per_term = ESSENTIAL_SEARCH_TERMS, ESSENTIAL_RESULTS_PER_TERM

        summary = PopulateSummary(mode=mode)
        log.info("Populating charity cache (mode=%s, %d terms)", mode, len(terms))

        for org_id in PRIORITY_CHARITY_IDS:
            try:
                if self.force_sync(platform, org_id) is not None:
                    summary.priority_synced += 1
            except GatewayTransportError as e:
                summary.errors.append(f"Failed to sync charity {org_id}: {e.message}")
                log.warning("populate: priority charity %s failed: %s", org_id, e.message)

        for term in dict.fromkeys(terms):
            try:
                summary.search_synced += len(self.search_and_sync(platform, term, per_term))
            except GatewayTransportError as e:
                summary.errors.append(f'Failed to search "{term}": {e.message}')
                log.warning("populate: search %r failed: %s", term, e.message)
            if self.populate_delay > 0:
                self._sleep(self.populate_delay)

        log.info(
            "Charity cache populated: priority=%d search=%d errors=%d",
            summary.priority_synced,
            summary.search_synced,
            len(summary.errors),
        )
        return summary
