from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from pbd.extensions import db


class ReconciliationRun(db.Model):
    """Audit row written at the end of every poller run."""

    __tablename__ = "reconciliation_runs"
    __table_args__ = (Index("ix_reconciliation_runs_started", "started_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    trigger: Mapped[str] = mapped_column(
        db.String(20),
        nullable=False,
        default="manual",
        doc="celery, cli, api",
    )
    started_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    checked: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    succeeded: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    reviewed: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    timed_out: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    unchanged: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    errors: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    lost_races: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "trigger": self.trigger,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "checked": self.checked,
            "succeeded": self.succeeded,
            "reviewed": self.reviewed,
            "timedOut": self.timed_out,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errors": self.errors,
            "lostRaces": self.lost_races,
        }
