"""
Client — a customer of the agency.

Personal and family/employee clients are addressed by first + last name;
corporate clients by company name.
"""

from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db.models.base import Base, generate_uuid, utcnow


class Client(Base):
    __tablename__ = "clients"

    id = Column(Uuid, primary_key=True, default=generate_uuid)
    client_type = Column(String(20), nullable=False, default="PERSONAL")

    # ── Identity ─────────────────────────────
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    company_name = Column(String(255), nullable=True)

    # ── Contact ──────────────────────────────
    email = Column(String(320), nullable=True, unique=True)
    phone = Column(String(30), nullable=False)
    whatsapp_number = Column(String(20), nullable=True)
    date_of_birth = Column(Date, nullable=True)

    # ── Address ──────────────────────────────
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    additional_info = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # ── Relationships ─────────────────────────
    policy_instances = relationship(
        "PolicyInstance",
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def display_name(self) -> str:
        if self.client_type == "CORPORATE" and self.company_name:
            return self.company_name
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<Client {self.id} {self.display_name}>"
