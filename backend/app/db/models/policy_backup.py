"""PolicyBackup — JSON snapshot of the legacy `policies` table taken before a migration."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String

from app.db.models.base import Base, JSONType, utcnow


class PolicyBackup(Base):
    __tablename__ = "policy_backups"

    id = Column(String(64), primary_key=True)  # policy_backup_<epoch ms>
    row_count = Column(Integer, nullable=False, default=0)
    payload = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PolicyBackup {self.id} rows={self.row_count}>"
