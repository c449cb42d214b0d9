"""
LegacyPolicy — the flat pre-template `policies` table.

Kept only as the source for the template/instance migration and as the
restore target of a rollback.
"""

from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, Numeric, String, Uuid

from app.db.models.base import Base, generate_uuid, utcnow


class LegacyPolicy(Base):
    __tablename__ = "policies"

    id = Column(Uuid, primary_key=True, default=generate_uuid)
    # No FK: orphaned rows are reported by the migration validator
    client_id = Column(Uuid, nullable=True, index=True)

    policy_number = Column(String(100), nullable=True)
    policy_type = Column(String(20), nullable=True)
    provider = Column(String(255), nullable=True)
    premium_amount = Column(Numeric(12, 2), nullable=True)
    commission_amount = Column(Numeric(12, 2), nullable=True)
    status = Column(String(20), nullable=False, default="Active")
    start_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<LegacyPolicy {self.policy_number} client={self.client_id}>"
