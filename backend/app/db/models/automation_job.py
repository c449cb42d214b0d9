"""AutomationJob — bookkeeping for each (channel, message type) automation."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint, Uuid

from app.db.models.base import Base, generate_uuid, utcnow


class AutomationJob(Base):
    __tablename__ = "automation_jobs"
    __table_args__ = (
        UniqueConstraint("channel", "message_type", "trigger", name="uq_automation_job_kind"),
    )

    id = Column(Uuid, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    channel = Column(String(20), nullable=False)
    message_type = Column(String(30), nullable=False)
    trigger = Column(String(30), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    days_before = Column(Integer, nullable=True)

    last_run_at = Column(DateTime(timezone=True), nullable=True)
    next_run_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AutomationJob {self.name} last_run={self.last_run_at}>"
