"""
Policy data integrity checks.

Each check returns an IntegrityCheck with a PASS / WARN / FAIL status;
the report's overall status is the worst of them.  ``render_report``
produces the plain-text form printed by ``manage.py integrity-check``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import CheckStatus
from app.core.dates import local_today
from app.core.logging import get_logger
from app.repositories import clients as client_repository
from app.repositories import legacy_policies as legacy_repository
from app.repositories import policy_instances as instance_repository
from app.repositories import policy_templates as template_repository

logger = get_logger(__name__)

SAMPLE_SIZE = 5


@dataclass
class IntegrityCheck:
    name: str
    description: str
    status: CheckStatus
    details: str
    affected_records: int = 0
    sample_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "details": self.details,
            "affected_records": self.affected_records,
            "sample_ids": self.sample_ids,
        }


@dataclass
class IntegrityReport:
    generated_at: datetime
    checks: list[IntegrityCheck]

    @property
    def overall_status(self) -> CheckStatus:
        statuses = {c.status for c in self.checks}
        if CheckStatus.FAIL in statuses:
            return CheckStatus.FAIL
        if CheckStatus.WARN in statuses:
            return CheckStatus.WARN
        return CheckStatus.PASS

    def summary(self) -> dict[str, int]:
        return {
            "total_checks": len(self.checks),
            "passed": sum(1 for c in self.checks if c.status == CheckStatus.PASS),
            "warnings": sum(1 for c in self.checks if c.status == CheckStatus.WARN),
            "errors": sum(1 for c in self.checks if c.status == CheckStatus.FAIL),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "overall_status": self.overall_status.value,
            "summary": self.summary(),
            "checks": [c.to_dict() for c in self.checks],
        }


def _sample(rows) -> list[str]:
    return [str(r.id) for r in rows[:SAMPLE_SIZE]]


def _result(name: str, description: str, rows, *, fail_status: CheckStatus, ok: str, bad: str) -> IntegrityCheck:
    if not rows:
        return IntegrityCheck(name, description, CheckStatus.PASS, ok)
    return IntegrityCheck(
        name,
        description,
        fail_status,
        bad.format(count=len(rows)),
        affected_records=len(rows),
        sample_ids=_sample(rows),
    )


# ── Checks ────────────────────────────────

async def check_policy_number_uniqueness(db: AsyncSession, today: date) -> IntegrityCheck:
    duplicates = await template_repository.duplicate_numbers(db)
    blanks = await template_repository.blank_field_templates(db)
    name, description = "Policy Number Uniqueness", "Policy numbers are unique and template fields are filled"
    if not duplicates and not blanks:
        return IntegrityCheck(name, description, CheckStatus.PASS, "All policy numbers are unique")
    parts = []
    if duplicates:
        parts.append(f"{len(duplicates)} duplicate policy numbers")
    if blanks:
        parts.append(f"{len(blanks)} templates with blank required fields")
    return IntegrityCheck(
        name,
        description,
        CheckStatus.FAIL,
        ", ".join(parts),
        affected_records=len(duplicates) + len(blanks),
        sample_ids=duplicates[:SAMPLE_SIZE] + _sample(blanks),
    )


async def check_template_instance_consistency(db: AsyncSession, today: date) -> IntegrityCheck:
    unused = await template_repository.templates_without_instances(db)
    return _result(
        "Template-Instance Consistency",
        "Every template is held by at least one client",
        unused,
        fail_status=CheckStatus.WARN,
        ok="All templates have instances",
        bad="{count} templates have no instances",
    )


async def check_client_references(db: AsyncSession, today: date) -> IntegrityCheck:
    referenced = await legacy_repository.client_ids(db)
    missing = referenced - await client_repository.existing_ids(db, referenced)
    name, description = "Client References", "Legacy policies reference existing clients"
    if not missing:
        return IntegrityCheck(name, description, CheckStatus.PASS, "All client references are valid")
    return IntegrityCheck(
        name,
        description,
        CheckStatus.FAIL,
        f"{len(missing)} referenced clients do not exist",
        affected_records=len(missing),
        sample_ids=[str(i) for i in list(missing)[:SAMPLE_SIZE]],
    )


async def check_date_consistency(db: AsyncSession, today: date) -> IntegrityCheck:
    return _result(
        "Date Consistency",
        "Expiry dates fall after start dates",
        await instance_repository.find_bad_dates(db),
        fail_status=CheckStatus.FAIL,
        ok="All instance dates are consistent",
        bad="{count} instances expire on or before their start date",
    )


async def check_amounts(db: AsyncSession, today: date) -> IntegrityCheck:
    invalid, over = await instance_repository.find_bad_amounts(db)
    name, description = "Amount Validation", "Premium is positive and commission is between zero and premium"
    if invalid:
        return IntegrityCheck(
            name,
            description,
            CheckStatus.FAIL,
            f"{len(invalid)} instances have a non-positive premium or negative commission",
            affected_records=len(invalid),
            sample_ids=_sample(invalid),
        )
    if over:
        return IntegrityCheck(
            name,
            description,
            CheckStatus.WARN,
            f"{len(over)} instances have commission greater than premium",
            affected_records=len(over),
            sample_ids=_sample(over),
        )
    return IntegrityCheck(name, description, CheckStatus.PASS, "All amounts are valid")


async def check_status_consistency(db: AsyncSession, today: date) -> IntegrityCheck:
    unknown = await instance_repository.find_unknown_status(db)
    if unknown:
        return _result(
            "Status Consistency",
            "Statuses are valid and match expiry dates",
            unknown,
            fail_status=CheckStatus.FAIL,
            ok="",
            bad="{count} instances have an unknown status",
        )
    return _result(
        "Status Consistency",
        "Statuses are valid and match expiry dates",
        await instance_repository.find_active_past_expiry(db, today=today),
        fail_status=CheckStatus.WARN,
        ok="All statuses are consistent",
        bad="{count} instances are past expiry but still Active",
    )


async def check_duplicate_instances(db: AsyncSession, today: date) -> IntegrityCheck:
    pairs = await instance_repository.find_duplicate_pairs(db)
    name, description = "Duplicate Instances", "A client holds each template at most once"
    if not pairs:
        return IntegrityCheck(name, description, CheckStatus.PASS, "No duplicate instances")
    return IntegrityCheck(
        name,
        description,
        CheckStatus.FAIL,
        f"{len(pairs)} client/template pairs have more than one instance",
        affected_records=sum(n for _, _, n in pairs),
        sample_ids=[f"{t}:{c}" for t, c, _ in pairs[:SAMPLE_SIZE]],
    )


async def check_orphaned_instances(db: AsyncSession, today: date) -> IntegrityCheck:
    return _result(
        "Orphaned Instances",
        "Instances reference an existing template and client",
        await instance_repository.find_orphaned(db),
        fail_status=CheckStatus.FAIL,
        ok="No orphaned instances",
        bad="{count} instances reference a missing template or client",
    )


CHECKS: list[Callable[[AsyncSession, date], Awaitable[IntegrityCheck]]] = [
    check_policy_number_uniqueness,
    check_template_instance_consistency,
    check_client_references,
    check_date_consistency,
    check_amounts,
    check_status_consistency,
    check_duplicate_instances,
    check_orphaned_instances,
]


async def run_integrity_checks(db: AsyncSession, today: date | None = None) -> IntegrityReport:
    today = today or local_today()
    checks = [await check(db, today) for check in CHECKS]
    report = IntegrityReport(generated_at=datetime.now(timezone.utc), checks=checks)
    logger.info("Integrity check completed", overall=report.overall_status.value, **report.summary())
    return report


def render_report(report: IntegrityReport) -> str:
    lines = [
        "Policy Data Integrity Report",
        f"Generated: {report.generated_at.isoformat()}",
        f"Overall status: {report.overall_status.value}",
        "",
    ]
    summary = report.summary()
    lines.append(
        f"Checks: {summary['total_checks']}  passed: {summary['passed']}  "
        f"warnings: {summary['warnings']}  errors: {summary['errors']}"
    )
    lines.append("")
    for check in report.checks:
        lines.append(f"[{check.status.value}] {check.name}")
        lines.append(f"    {check.description}")
        lines.append(f"    {check.details}")
        if check.affected_records:
            lines.append(f"    Affected records: {check.affected_records}")
        if check.sample_ids:
            lines.append(f"    Sample IDs: {', '.join(check.sample_ids)}")
    return "\n".join(lines)
