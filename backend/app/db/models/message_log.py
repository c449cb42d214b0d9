"""
MessageLog — one row per automated email / WhatsApp send attempt.

Rows are written PENDING before the provider call and flipped to SENT or
FAILED afterwards; de-duplication of the daily run reads them back.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text, Uuid

from app.db.models.base import Base, generate_uuid, utcnow


class MessageLog(Base):
    __tablename__ = "message_logs"

    id = Column(Uuid, primary_key=True, default=generate_uuid)

    channel = Column(String(20), nullable=False, index=True)  # EMAIL | WHATSAPP
    message_type = Column(String(30), nullable=False, index=True)
    recipient = Column(String(320), nullable=False)
    recipient_name = Column(String(255), nullable=False, default="")
    subject = Column(String(500), nullable=True)

    # ── Delivery ──────────────────────────────
    status = Column(String(20), nullable=False, default="PENDING", index=True)
    provider_message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)

    # ── Subject references (plain ids, rows may be deleted later) ──
    client_id = Column(Uuid, nullable=True, index=True)
    lead_id = Column(Uuid, nullable=True, index=True)
    policy_instance_id = Column(Uuid, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<MessageLog {self.channel}/{self.message_type} to={self.recipient} status={self.status}>"
