"""
Models package — re-exports Base and all models.

Import models here so Alembic's `target_metadata = Base.metadata`
picks up every table automatically.

When adding a new model:
    1. Create `app/db/models/<table_name>.py`
    2. Import it here
"""

from app.db.models.base import Base
from app.db.models.activity import Activity
from app.db.models.agent_settings import AgentSettings
from app.db.models.audit_log import AuditLog
from app.db.models.automation_job import AutomationJob
from app.db.models.client import Client
from app.db.models.lead import Lead
from app.db.models.legacy_policy import LegacyPolicy
from app.db.models.message_log import MessageLog
from app.db.models.policy_backup import PolicyBackup
from app.db.models.policy_instance import PolicyInstance
from app.db.models.policy_template import PolicyTemplate

__all__ = [
    "Base",
    "Activity",
    "AgentSettings",
    "AuditLog",
    "AutomationJob",
    "Client",
    "Lead",
    "LegacyPolicy",
    "MessageLog",
    "PolicyBackup",
    "PolicyInstance",
    "PolicyTemplate",
]
