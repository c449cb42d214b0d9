"""
PolicyTemplate — a reusable policy product (number, type, provider).

Many clients may hold the same template through PolicyInstance rows.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db.models.base import Base, generate_uuid, utcnow


class PolicyTemplate(Base):
    __tablename__ = "policy_templates"

    id = Column(Uuid, primary_key=True, default=generate_uuid)
    policy_number = Column(String(100), nullable=False, unique=True, index=True)
    policy_type = Column(String(20), nullable=False, index=True)
    provider = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    instances = relationship(
        "PolicyInstance",
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<PolicyTemplate {self.policy_number} {self.policy_type}/{self.provider}>"
