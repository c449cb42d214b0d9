"""
AgentSettings — the single agent account and profile.

The CRM is a single-user system: one row (id=1) holds the login password
hash plus the agent's display name and email used as sender identity.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, utcnow


class AgentSettings(Base):
    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False, default="")
    agent_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Insurance Agent")
    agent_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AgentSettings {self.agent_email}>"
