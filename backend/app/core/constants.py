"""Shared constants and enums used across the application."""

from enum import StrEnum


class LeadStatus(StrEnum):
    """Sales pipeline stage of a lead."""

    NEW = "New"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    WON = "Won"
    LOST = "Lost"


class LeadPriority(StrEnum):
    HOT = "Hot"
    WARM = "Warm"
    COLD = "Cold"


class InsuranceType(StrEnum):
    """Lines of business the agency sells (lead interest and policy type)."""

    LIFE = "Life"
    HEALTH = "Health"
    AUTO = "Auto"
    HOME = "Home"
    BUSINESS = "Business"


class PolicyStatus(StrEnum):
    ACTIVE = "Active"
    EXPIRED = "Expired"


class ClientType(StrEnum):
    """Kind of client record; corporates are displayed by company name."""

    PERSONAL = "PERSONAL"
    FAMILY_EMPLOYEE = "FAMILY_EMPLOYEE"
    CORPORATE = "CORPORATE"


class AuditAction(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class MessageChannel(StrEnum):
    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"


class MessageType(StrEnum):
    """Kind of automated message sent to a client or lead."""

    BIRTHDAY_WISH = "BIRTHDAY_WISH"
    POLICY_RENEWAL = "POLICY_RENEWAL"
    CUSTOM = "CUSTOM"


class MessageStatus(StrEnum):
    """Delivery lifecycle of a message log row."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class AutomationTrigger(StrEnum):
    BIRTHDAY = "BIRTHDAY"
    POLICY_EXPIRY = "POLICY_EXPIRY"


class ExpiryLevel(StrEnum):
    """Urgency bucket for an expiring policy instance."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class CheckStatus(StrEnum):
    """Outcome of a single data-integrity check."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class ActivityAction(StrEnum):
    """Action keys written to the activity feed."""

    LEAD_CREATED = "lead_created"
    LEAD_UPDATED = "lead_updated"
    LEAD_STATUS_UPDATED = "lead_status_updated"
    LEAD_DELETED = "lead_deleted"
    LEAD_CONVERTED = "lead_converted"
    CLIENT_CREATED = "client_created"
    CLIENT_UPDATED = "client_updated"
    CLIENT_DELETED = "client_deleted"
    TEMPLATE_CREATED = "policy_template_created"
    TEMPLATE_UPDATED = "policy_template_updated"
    TEMPLATE_DELETED = "policy_template_deleted"
    INSTANCE_CREATED = "policy_instance_created"
    INSTANCE_UPDATED = "policy_instance_updated"
    INSTANCE_DELETED = "policy_instance_deleted"
    BULK_EXPIRY_UPDATE = "bulk_policy_expiry_update"
    AUTOMATION_RUN = "automation_run"
    POLICY_MIGRATION = "policy_migration"
    SETTINGS_UPDATED = "settings_updated"
    PASSWORD_CHANGED = "password_changed"


# Display order of the lead status chart
LEAD_STATUS_ORDER = [s.value for s in LeadStatus]

SETTINGS_ROW_ID = 1
