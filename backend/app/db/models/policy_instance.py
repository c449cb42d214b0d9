"""
PolicyInstance — one client's holding of a policy template.

Carries the client-specific money and dates. A client can hold a given
template at most once.
"""

from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.models.base import Base, generate_uuid, utcnow


class PolicyInstance(Base):
    __tablename__ = "policy_instances"
    __table_args__ = (
        UniqueConstraint("policy_template_id", "client_id", name="uq_policy_instance_template_client"),
    )

    id = Column(Uuid, primary_key=True, default=generate_uuid)
    policy_template_id = Column(
        Uuid, ForeignKey("policy_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)

    # ── Money ────────────────────────────────
    premium_amount = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # ── Lifecycle ────────────────────────────
    status = Column(String(20), nullable=False, default="Active", index=True)
    start_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    template = relationship("PolicyTemplate", back_populates="instances")
    client = relationship("Client", back_populates="policy_instances")

    def __repr__(self) -> str:
        return f"<PolicyInstance {self.id} template={self.policy_template_id} client={self.client_id} status={self.status}>"
