"""
Legacy policy migration.

Turns rows of the flat ``policies`` table into shared ``policy_templates``
(one per policy number / type / provider) and per-client
``policy_instances``.  Every run is validated first; a JSON backup of the
legacy table is written to ``policy_backups`` unless disabled, and
``rollback_migration`` restores it.  After a run,
``verify_migration_integrity`` checks the new tables and
``cleanup_old_policies`` drops the legacy rows behind a final backup.

Functions never commit.  The caller (CLI or API session) owns the
transaction, so a failed rollback leaves nothing half-applied.
"""

from __future__ import annotations

import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import ActivityAction
from app.core.dates import local_today
from app.core.logging import get_logger
from app.db.models.legacy_policy import LegacyPolicy
from app.repositories import clients as client_repository
from app.repositories import legacy_policies as legacy_repository
from app.repositories import policy_instances as instance_repository
from app.repositories import policy_templates as template_repository
from app.services.activity import log_activity

logger = get_logger(__name__)


# ═══════════════════════════════════════════════════════════
#  Results
# ═══════════════════════════════════════════════════════════

@dataclass
class ValidationReport:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_policies: int = 0
    unique_templates: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "total_policies": self.total_policies,
            "unique_templates": self.unique_templates,
        }


@dataclass
class BackupResult:
    success: bool
    backup_id: str = ""
    row_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "backup_id": self.backup_id,
            "row_count": self.row_count,
            "error": self.error,
        }


@dataclass
class MigrationResult:
    """Counters and per-row errors of one migration run."""

    success: bool = False
    dry_run: bool = False
    backup_id: str | None = None
    templates_created: int = 0
    instances_created: int = 0
    policies_migrated: int = 0
    duplicate_templates: int = 0
    skipped_policies: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "backup_id": self.backup_id,
            "templates_created": self.templates_created,
            "instances_created": self.instances_created,
            "policies_migrated": self.policies_migrated,
            "duplicate_templates": self.duplicate_templates,
            "skipped_policies": self.skipped_policies,
            "errors": self.errors,
        }


@dataclass
class RollbackResult:
    success: bool
    backup_id: str
    restored: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "backup_id": self.backup_id,
            "restored": self.restored,
            "error": self.error,
        }


@dataclass
class VerificationCheck:
    name: str
    passed: bool
    details: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "details": self.details}


@dataclass
class VerificationResult:
    checks: list[VerificationCheck] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(check.passed for check in self.checks)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "checks": [c.to_dict() for c in self.checks]}


@dataclass
class CleanupResult:
    success: bool
    deleted_count: int = 0
    backup_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "deleted_count": self.deleted_count,
            "backup_id": self.backup_id,
            "error": self.error,
        }


@dataclass
class MigrationStatus:
    """Row counts on both sides of the migration and what they imply."""

    legacy_policies: int
    templates: int
    instances: int

    @property
    def state(self) -> str:
        if self.legacy_policies and not self.templates and not self.instances:
            return "ready"
        if self.legacy_policies:
            return "partial"
        if self.templates and self.instances:
            return "completed"
        return "empty"

    def to_dict(self) -> dict[str, Any]:
        return {
            "legacy_policies": self.legacy_policies,
            "templates": self.templates,
            "instances": self.instances,
            "state": self.state,
        }


# ═══════════════════════════════════════════════════════════
#  Serialisation of legacy rows for the JSON backup
# ═══════════════════════════════════════════════════════════

def _row_to_json(policy: LegacyPolicy) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for name in legacy_repository.LEGACY_FIELDS:
        value = getattr(policy, name)
        if isinstance(value, (uuid.UUID, Decimal)):
            value = str(value)
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        row[name] = value
    return row


def _row_from_json(row: dict[str, Any]) -> dict[str, Any]:
    values = dict(row)
    for name in ("id", "client_id"):
        if values.get(name):
            values[name] = uuid.UUID(values[name])
    for name in ("premium_amount", "commission_amount"):
        if values.get(name) is not None:
            values[name] = Decimal(values[name])
    for name in ("start_date", "expiry_date"):
        if values.get(name):
            values[name] = date.fromisoformat(values[name])
    for name in ("created_at", "updated_at"):
        if values.get(name):
            values[name] = datetime.fromisoformat(values[name])
    return values


def _template_key(policy: LegacyPolicy) -> tuple[str, str, str]:
    return (
        (policy.policy_number or "").strip(),
        (policy.policy_type or "").strip(),
        (policy.provider or "").strip(),
    )


# ═══════════════════════════════════════════════════════════
#  Operations
# ═══════════════════════════════════════════════════════════

async def validate_policy_data(db: AsyncSession) -> ValidationReport:
    """Check legacy rows before migrating. Errors block the migration."""
    report = ValidationReport()
    policies = await legacy_repository.list_policies(db)
    report.total_policies = len(policies)

    if not policies:
        report.warnings.append("No policies found to migrate")
        return report

    missing = [p for p in policies if not all(_template_key(p)) or p.client_id is None]
    if missing:
        report.errors.append(
            f"{len(missing)} policies are missing required fields (policy number, type, provider or client)"
        )

    referenced = await legacy_repository.client_ids(db)
    existing = await client_repository.existing_ids(db, referenced)
    orphaned = [p for p in policies if p.client_id is not None and p.client_id not in existing]
    if orphaned:
        report.errors.append(f"{len(orphaned)} policies reference non-existent clients")

    numbers = Counter((p.policy_number or "").strip() for p in policies if p.policy_number)
    duplicates = [n for n, count in numbers.items() if count > 1]
    if duplicates:
        report.warnings.append(
            f"{len(duplicates)} policy numbers are shared by multiple policies and will become shared templates"
        )

    today = local_today()
    future = [p for p in policies if p.start_date and p.start_date > today]
    if future:
        report.warnings.append(f"{len(future)} policies have future start dates")

    negative = [
        p
        for p in policies
        if (p.premium_amount is not None and p.premium_amount < 0)
        or (p.commission_amount is not None and p.commission_amount < 0)
    ]
    if negative:
        report.warnings.append(f"{len(negative)} policies have negative amounts")

    report.unique_templates = len({_template_key(p) for p in policies})
    report.is_valid = not report.errors
    logger.info(
        "Legacy policy validation",
        total=report.total_policies,
        templates=report.unique_templates,
        errors=len(report.errors),
        warnings=len(report.warnings),
    )
    return report


async def create_policy_backup(db: AsyncSession) -> BackupResult:
    """Snapshot every legacy row into ``policy_backups``."""
    backup_id = f"policy_backup_{int(time.time() * 1000)}"
    try:
        rows = [_row_to_json(p) for p in await legacy_repository.list_policies(db)]
        await legacy_repository.create_backup(db, backup_id=backup_id, rows=rows)
    except SQLAlchemyError as exc:
        logger.error("Policy backup failed", error=str(exc))
        return BackupResult(success=False, error=str(exc))

    logger.info("Policy backup created", backup_id=backup_id, rows=len(rows))
    return BackupResult(success=True, backup_id=backup_id, row_count=len(rows))


async def migrate_policies(
    db: AsyncSession,
    *,
    dry_run: bool = False,
    batch_size: int | None = None,
    skip_duplicates: bool | None = None,
    create_backup: bool | None = None,
) -> MigrationResult:
    """
    Migrate legacy rows to templates and instances.

    Rows are walked in creation order, ``batch_size`` at a time.  With
    ``skip_duplicates`` an existing template or instance is reused and
    counted as a duplicate; without it the row is skipped with an error.
    A dry run only counts what would be created.
    """
    batch_size = batch_size or settings.MIGRATION_BATCH_SIZE
    skip_duplicates = settings.MIGRATION_SKIP_DUPLICATES if skip_duplicates is None else skip_duplicates
    create_backup = settings.MIGRATION_CREATE_BACKUP if create_backup is None else create_backup
    result = MigrationResult(dry_run=dry_run)
    log = logger.bind(dry_run=dry_run, batch_size=batch_size)
    log.info("Policy migration started")

    validation = await validate_policy_data(db)
    if not validation.is_valid:
        result.errors.extend(validation.errors)
        log.warning("Policy migration aborted, validation failed", errors=validation.errors)
        return result

    if create_backup and not dry_run:
        backup = await create_policy_backup(db)
        if not backup.success:
            result.errors.append(f"Backup failed: {backup.error}")
            return result
        result.backup_id = backup.backup_id

    known_clients = await client_repository.existing_ids(db, await legacy_repository.client_ids(db))
    templates: dict[tuple[str, str, str], uuid.UUID | None] = {}
    seen_pairs: set[tuple[tuple[str, str, str], uuid.UUID]] = set()

    try:
        offset = 0
        while True:
            batch = await legacy_repository.list_policies(db, offset=offset, limit=batch_size)
            if not batch:
                break
            for policy in batch:
                await _migrate_row(db, policy, result, templates, seen_pairs, known_clients, skip_duplicates, dry_run)
            offset += batch_size
            log.info("Policy migration batch processed", processed=offset)
    except SQLAlchemyError as exc:
        result.errors.append(f"Migration failed: {exc}")
        log.error("Policy migration failed", error=str(exc))
        return result

    result.success = not result.errors or result.policies_migrated > 0
    if not dry_run and result.policies_migrated:
        await log_activity(
            db,
            ActivityAction.POLICY_MIGRATION,
            f"Migrated {result.policies_migrated} legacy policies into "
            f"{result.templates_created} templates and {result.instances_created} instances",
        )
    log.info("Policy migration completed", **{k: v for k, v in result.to_dict().items() if k != "errors"})
    return result


async def _migrate_row(
    db: AsyncSession,
    policy: LegacyPolicy,
    result: MigrationResult,
    templates: dict[tuple[str, str, str], uuid.UUID | None],
    seen_pairs: set[tuple[tuple[str, str, str], uuid.UUID]],
    known_clients: set[uuid.UUID],
    skip_duplicates: bool,
    dry_run: bool,
) -> None:
    key = _template_key(policy)
    number = key[0] or "<no number>"

    if policy.client_id not in known_clients:
        result.skipped_policies += 1
        result.errors.append(f"Skipped policy {number}: Client not found")
        return
    if policy.start_date is None or policy.expiry_date is None:
        result.skipped_policies += 1
        result.errors.append(f"Skipped policy {number}: Start and expiry dates are required")
        return

    if key not in templates:
        if dry_run:
            templates[key] = None
            result.templates_created += 1
        else:
            existing = await template_repository.find_template(
                db, policy_number=key[0], policy_type=key[1], provider=key[2]
            )
            if existing is not None:
                if not skip_duplicates:
                    result.skipped_policies += 1
                    result.errors.append(f"Template already exists for policy {number}")
                    return
                templates[key] = existing.id
                result.duplicate_templates += 1
            elif await template_repository.get_template_by_number(db, key[0]) is not None:
                result.skipped_policies += 1
                result.errors.append(f"Policy number {number} is already used by a different template")
                return
            else:
                template = await template_repository.create_template(
                    db,
                    policy_number=key[0],
                    policy_type=key[1],
                    provider=key[2],
                    description=f"Migrated from policy {number}",
                    created_at=policy.created_at,
                    updated_at=policy.updated_at,
                )
                templates[key] = template.id
                result.templates_created += 1

    pair = (key, policy.client_id)
    if dry_run:
        if pair in seen_pairs:
            result.duplicate_templates += 1
        else:
            seen_pairs.add(pair)
            result.instances_created += 1
        result.policies_migrated += 1
        return

    template_id = templates[key]
    existing_instance = await instance_repository.get_for_client_and_template(
        db, client_id=policy.client_id, template_id=template_id
    )
    if existing_instance is not None:
        if not skip_duplicates:
            result.skipped_policies += 1
            result.errors.append(f"Instance already exists for client {policy.client_id} and policy {number}")
            return
        result.duplicate_templates += 1
    else:
        await instance_repository.create_instance(
            db,
            policy_template_id=template_id,
            client_id=policy.client_id,
            premium_amount=policy.premium_amount if policy.premium_amount is not None else Decimal("0"),
            commission_amount=policy.commission_amount if policy.commission_amount is not None else Decimal("0"),
            status=policy.status,
            start_date=policy.start_date,
            expiry_date=policy.expiry_date,
            created_at=policy.created_at,
            updated_at=policy.updated_at,
        )
        result.instances_created += 1
    result.policies_migrated += 1


async def rollback_migration(db: AsyncSession, backup_id: str) -> RollbackResult:
    """
    Delete all templates and instances and restore the legacy table.

    The legacy table is emptied before the restore so rows still present
    are not duplicated.
    """
    backup = await legacy_repository.get_backup(db, backup_id)
    if backup is None:
        return RollbackResult(success=False, backup_id=backup_id, error=f"Backup {backup_id} not found")

    logger.info("Policy rollback started", backup_id=backup_id)
    try:
        await instance_repository.delete_all_instances(db)
        await template_repository.delete_all_templates(db)
        await legacy_repository.delete_all_policies(db)
        for row in backup.payload:
            await legacy_repository.create_legacy_policy(db, **_row_from_json(row))
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Policy rollback failed", backup_id=backup_id, error=str(exc))
        return RollbackResult(success=False, backup_id=backup_id, error=str(exc))

    logger.info("Policy rollback completed", backup_id=backup_id, restored=len(backup.payload))
    return RollbackResult(success=True, backup_id=backup_id, restored=len(backup.payload))


async def verify_migration_integrity(db: AsyncSession, today: date | None = None) -> VerificationResult:
    """Post-migration checks: every legacy row became an instance and the new tables are sound."""
    today = today or local_today()
    result = VerificationResult()
    try:
        policies = await legacy_repository.count_policies(db)
        instances = await instance_repository.count_instances(db)
        result.checks.append(
            VerificationCheck(
                "Policy to Instance Count Match",
                policies == instances,
                f"Policies: {policies}, Instances: {instances}",
            )
        )

        orphaned = len(await instance_repository.find_orphaned(db))
        result.checks.append(
            VerificationCheck("No Orphaned Instances", orphaned == 0, f"Orphaned instances: {orphaned}")
        )

        duplicate_templates = len(await template_repository.duplicate_numbers(db))
        result.checks.append(
            VerificationCheck(
                "Template Uniqueness", duplicate_templates == 0, f"Duplicate templates: {duplicate_templates}"
            )
        )

        duplicate_instances = len(await instance_repository.find_duplicate_pairs(db))
        result.checks.append(
            VerificationCheck(
                "Instance Uniqueness", duplicate_instances == 0, f"Duplicate instances: {duplicate_instances}"
            )
        )

        invalid = await instance_repository.count_inconsistent(db, today=today)
        result.checks.append(VerificationCheck("Data Consistency", invalid == 0, f"Invalid instances: {invalid}"))
    except SQLAlchemyError as exc:
        logger.error("Migration verification failed", error=str(exc))
        result.checks.append(VerificationCheck("Verification Process", False, f"Verification failed: {exc}"))

    logger.info("Migration verification", success=result.success, checks=len(result.checks))
    return result


async def cleanup_old_policies(db: AsyncSession, *, create_final_backup: bool = True) -> CleanupResult:
    """Delete every legacy row, after a final backup unless disabled."""
    backup_id = None
    if create_final_backup:
        backup = await create_policy_backup(db)
        if not backup.success:
            return CleanupResult(success=False, error=f"Backup failed: {backup.error}")
        backup_id = backup.backup_id

    try:
        deleted = await legacy_repository.delete_all_policies(db)
    except SQLAlchemyError as exc:
        logger.error("Legacy policy cleanup failed", error=str(exc))
        return CleanupResult(success=False, backup_id=backup_id, error=str(exc))

    logger.info("Legacy policies cleaned up", deleted=deleted, backup_id=backup_id)
    return CleanupResult(success=True, deleted_count=deleted, backup_id=backup_id)


async def get_migration_status(db: AsyncSession) -> MigrationStatus:
    return MigrationStatus(
        legacy_policies=await legacy_repository.count_policies(db),
        templates=await template_repository.count_templates(db),
        instances=await instance_repository.count_instances(db),
    )
