#!/usr/bin/env python3
"""
Insurance CRM — Management Tool

Single entry point for running and maintaining the CRM backend.
Usage: python manage.py <command> [options]
"""

import asyncio
import logging
import os
import subprocess
import sys
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "backend")
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)


# ═══════════════════════════════════════════════════════════
#  Logging Setup
# ═══════════════════════════════════════════════════════════

class ColorFormatter(logging.Formatter):
    """Console formatter with ANSI colors and level symbols."""

    COLORS = {
        "INFO": "\033[96m",        # Cyan
        "SUCCESS": "\033[92m",     # Green
        "WARNING": "\033[93m",     # Yellow
        "ERROR": "\033[91m",       # Red
        "CRITICAL": "\033[91m\033[1m",  # Bold Red
        "DEBUG": "\033[94m",       # Blue
        "HEADER": "\033[95m",      # Magenta
        "BOLD": "\033[1m",
        "RESET": "\033[0m",
    }

    SYMBOLS = {
        "INFO": "→",
        "SUCCESS": "✓",
        "WARNING": "⚠",
        "ERROR": "✗",
        "CRITICAL": "☠",
        "DEBUG": "•",
        "STEP": "▶",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.platform != "win32"

    def _colorize(self, text: str, color_name: str) -> str:
        if not self.use_colors:
            return text
        color = self.COLORS.get(color_name, "")
        return f"{color}{text}{self.COLORS['RESET']}" if color else text

    def format(self, record: logging.LogRecord) -> str:
        msg = str(record.msg)

        if "[SUCCESS]" in msg:
            symbol, color = self.SYMBOLS["SUCCESS"], "SUCCESS"
        elif "[WARNING]" in msg:
            symbol, color = self.SYMBOLS["WARNING"], "WARNING"
        elif "[ERROR]" in msg:
            symbol, color = self.SYMBOLS["ERROR"], "ERROR"
        elif "[STEP]" in msg:
            symbol, color = self.SYMBOLS["STEP"], "INFO"
        else:
            symbol, color = self.SYMBOLS.get(record.levelname, ""), record.levelname

        if symbol and not msg.startswith(("===", " ")):
            record.msg = f"{symbol} {msg}"

        if self.use_colors:
            if msg.startswith("==="):
                record.msg = self._colorize(str(record.msg), "HEADER")
            else:
                record.msg = self._colorize(str(record.msg), color)

        return super().format(record)


# --- Bootstrap logger --------------------------------------------------------
_log_dir = "logs"
os.makedirs(_log_dir, exist_ok=True)
_log_file = os.path.join(_log_dir, f"manage-{datetime.now():%Y%m%d}.log")

_file_handler = logging.FileHandler(_log_file, encoding="utf-8")
_file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))

_console_handler = logging.StreamHandler()
_console_handler.setFormatter(ColorFormatter())

logging.basicConfig(level=logging.INFO, handlers=[_file_handler, _console_handler])
logger = logging.getLogger("manage")


# ═══════════════════════════════════════════════════════════
#  CRM Manager
# ═══════════════════════════════════════════════════════════

class CRMManager:
    """Runs the API and workers and performs database maintenance jobs."""

    # ─── Helpers ──────────────────────────────────────────
    def _run(self, cmd: List[str]) -> None:
        """Run a long-lived process from the backend directory."""
        logger.info(f"[STEP] Running: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, check=True, cwd=BACKEND_DIR)
        except KeyboardInterrupt:
            logger.info("\n[SUCCESS] Stopped")

    def _in_session(self, work: Callable[[Any], Awaitable[Any]]) -> Any:
        """Run *work(session)* and commit; roll back on any error."""
        from app.db.session import async_session, engine

        async def runner():
            try:
                async with async_session() as session:
                    try:
                        result = await work(session)
                        await session.commit()
                        return result
                    except Exception:
                        await session.rollback()
                        raise
            finally:
                await engine.dispose()

        return asyncio.run(runner())

    # ─── Processes ────────────────────────────────────────
    def serve(self, reload: bool = False, port: int = 8000) -> None:
        logger.info("\n=== Starting API Server ===")
        cmd = ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", str(port)]
        if reload:
            cmd.append("--reload")
        self._run(cmd)

    def worker(self) -> None:
        logger.info("\n=== Starting Celery Worker ===")
        self._run(["celery", "-A", "app.tasks", "worker", "-Q", "automation,default", "--loglevel=INFO"])

    def beat(self) -> None:
        logger.info("\n=== Starting Celery Beat ===")
        self._run(["celery", "-A", "app.tasks", "beat", "--loglevel=INFO"])

    # ─── Database ─────────────────────────────────────────
    def init_db(self) -> None:
        """Apply Alembic migrations."""
        logger.info("\n=== Database Initialisation ===")
        logger.info("[STEP] Running Alembic migrations…")
        subprocess.run(["alembic", "upgrade", "head"], check=True, cwd=BACKEND_DIR)
        logger.info("[SUCCESS] Database migrations applied!")

    def seed(self) -> None:
        logger.info("\n=== Seeding Database ===")
        logger.info("[STEP] Inserting development seed data…")
        subprocess.run([sys.executable, "-m", "scripts.seed_data"], check=True, cwd=BACKEND_DIR)
        logger.info("[SUCCESS] Seed data inserted!")

    def create_agent(self, email: str, password: str, name: Optional[str] = None) -> None:
        logger.info("\n=== Agent Account ===")
        from app.services.auth import provision_agent

        agent = self._in_session(
            lambda session: provision_agent(session, email=email, password=password, name=name)
        )
        logger.info(f"[SUCCESS] Agent account ready: {agent.agent_email}")

    # ─── Automation ───────────────────────────────────────
    def run_automation(self) -> None:
        logger.info("\n=== Client Automation ===")
        from app.messaging import get_email_provider, get_whatsapp_provider
        from app.services.automation import run_automated_tasks

        providers = [get_email_provider(), get_whatsapp_provider()]
        for provider in providers:
            if not provider.is_configured():
                logger.warning(f"[WARNING] {provider.channel} provider is not configured; sends will fail")

        result = self._in_session(lambda session: run_automated_tasks(session, providers))
        for kind in ("birthday_wishes", "policy_renewals"):
            for channel, summary in result[kind].items():
                logger.info(
                    f"  {kind} [{channel}]: sent={summary['sent']} failed={summary['failed']} "
                    f"skipped={summary['skipped']}"
                )
        logger.info("[SUCCESS] Automation run completed")

    def expire_policies(self) -> None:
        logger.info("\n=== Expired Policy Sweep ===")
        from app.services.policy_instances import expire_past_due

        updated = self._in_session(expire_past_due)
        logger.info(f"[SUCCESS] {updated} policies marked as expired")

    # ─── Legacy policy migration ──────────────────────────
    def validate_policies(self) -> None:
        logger.info("\n=== Legacy Policy Validation ===")
        from app.services.policy_migration import validate_policy_data

        report = self._in_session(validate_policy_data)
        logger.info(f"  Total policies:      {report.total_policies}")
        logger.info(f"  Unique templates:    {report.unique_templates}")
        for warning in report.warnings:
            logger.warning(f"[WARNING] {warning}")
        for error in report.errors:
            logger.error(f"[ERROR] {error}")
        if not report.is_valid:
            raise RuntimeError("Fix the errors above before migrating")
        logger.info("[SUCCESS] Data is ready for migration")

    def backup_policies(self) -> None:
        logger.info("\n=== Legacy Policy Backup ===")
        from app.services.policy_migration import create_policy_backup

        backup = self._in_session(create_policy_backup)
        if not backup.success:
            raise RuntimeError(f"Backup failed: {backup.error}")
        logger.info(f"[SUCCESS] Backed up {backup.row_count} policies as {backup.backup_id}")
        logger.info("  Keep this id for rollback-policies")

    def migrate_policies(
        self,
        dry_run: bool = False,
        batch_size: Optional[int] = None,
        create_backup: bool = True,
        strict: bool = False,
    ) -> None:
        label = "Dry Run" if dry_run else "Live"
        logger.info(f"\n=== Legacy Policy Migration ({label}) ===")
        from app.services.policy_migration import migrate_policies, validate_policy_data

        report = self._in_session(validate_policy_data)
        logger.info(
            f"[STEP] {report.total_policies} legacy policies, {report.unique_templates} distinct templates"
        )
        for warning in report.warnings:
            logger.warning(f"[WARNING] {warning}")
        for error in report.errors:
            logger.error(f"[ERROR] {error}")
        if not report.is_valid:
            raise RuntimeError("Validation failed, nothing migrated")

        result = self._in_session(
            lambda session: migrate_policies(
                session,
                dry_run=dry_run,
                batch_size=batch_size,
                skip_duplicates=not strict,
                create_backup=create_backup,
            )
        )
        logger.info(f"  Templates created:   {result.templates_created}")
        logger.info(f"  Instances created:   {result.instances_created}")
        logger.info(f"  Policies migrated:   {result.policies_migrated}")
        logger.info(f"  Duplicates reused:   {result.duplicate_templates}")
        logger.info(f"  Skipped policies:    {result.skipped_policies}")
        if result.backup_id:
            logger.info(f"  Backup id:           {result.backup_id}")
        for error in result.errors[:20]:
            logger.warning(f"[WARNING] {error}")
        if len(result.errors) > 20:
            logger.warning(f"[WARNING] … and {len(result.errors) - 20} more errors")

        if not result.success:
            raise RuntimeError("Migration failed")
        logger.info(f"[SUCCESS] Migration {'simulated' if dry_run else 'completed'}")

    def rollback_policies(self, backup_id: str) -> None:
        logger.info("\n=== Legacy Policy Rollback ===")
        logger.warning("[WARNING] This deletes ALL policy templates and instances!")
        confirm = input("\nType 'yes' to confirm: ")
        if confirm.strip().lower() != "yes":
            logger.info("[SUCCESS] Operation cancelled")
            return

        from app.services.policy_migration import rollback_migration

        result = self._in_session(lambda session: rollback_migration(session, backup_id))
        if not result.success:
            raise RuntimeError(result.error)
        logger.info(f"[SUCCESS] Restored {result.restored} legacy policies from {backup_id}")

    def verify_migration(self) -> None:
        logger.info("\n=== Migration Verification ===")
        from app.services.policy_migration import verify_migration_integrity

        result = self._in_session(verify_migration_integrity)
        for check in result.checks:
            if check.passed:
                logger.info(f"[SUCCESS] {check.name}: {check.details}")
            else:
                logger.error(f"[ERROR] {check.name}: {check.details}")
        if not result.success:
            raise RuntimeError("Some verification checks failed")
        logger.info("[SUCCESS] All verification checks passed")

    def cleanup_policies(self, create_backup: bool = True) -> None:
        logger.info("\n=== Legacy Policy Cleanup ===")
        logger.warning("[WARNING] This permanently deletes ALL legacy policy rows!")
        confirm = input("\nType 'yes' to confirm: ")
        if confirm.strip().lower() != "yes":
            logger.info("[SUCCESS] Operation cancelled")
            return

        from app.services.policy_migration import cleanup_old_policies

        result = self._in_session(
            lambda session: cleanup_old_policies(session, create_final_backup=create_backup)
        )
        if not result.success:
            raise RuntimeError(result.error)
        logger.info(f"[SUCCESS] Deleted {result.deleted_count} legacy policies")
        if result.backup_id:
            logger.info(f"  Final backup:        {result.backup_id}")

    def migration_status(self) -> None:
        logger.info("\n=== Migration Status ===")
        from app.services.policy_migration import get_migration_status

        status = self._in_session(get_migration_status)
        logger.info(f"  Legacy policies:     {status.legacy_policies}")
        logger.info(f"  Policy templates:    {status.templates}")
        logger.info(f"  Policy instances:    {status.instances}")
        hints = {
            "ready": "Ready for migration; run validate-policies first",
            "partial": "Legacy and new rows both exist; verify, then cleanup or rollback",
            "completed": "Migration completed, legacy rows cleaned up",
            "empty": "No policy data found",
        }
        logger.info(f"[STEP] {hints[status.state]}")

    def integrity_check(self) -> None:
        logger.info("\n=== Policy Data Integrity ===")
        from app.core.constants import CheckStatus
        from app.services.integrity import render_report, run_integrity_checks

        report = self._in_session(run_integrity_checks)
        print(render_report(report))
        if report.overall_status == CheckStatus.FAIL:
            raise RuntimeError("Integrity check found errors")
        logger.info(f"[SUCCESS] Integrity check finished: {report.overall_status.value}")


# ═══════════════════════════════════════════════════════════
#  CLI
# ═══════════════════════════════════════════════════════════

USAGE = f"""
{ColorFormatter.COLORS['HEADER']}Insurance CRM — Management Tool{ColorFormatter.COLORS['RESET']}
{'═' * 50}

{ColorFormatter.COLORS['BOLD']}Usage:{ColorFormatter.COLORS['RESET']} python manage.py <command> [options]

{ColorFormatter.COLORS['BOLD']}Commands:{ColorFormatter.COLORS['RESET']}
    {ColorFormatter.COLORS['INFO']}serve{ColorFormatter.COLORS['RESET']}              Run the API (--reload, --port=N)
    {ColorFormatter.COLORS['INFO']}worker{ColorFormatter.COLORS['RESET']}             Run a Celery worker
    {ColorFormatter.COLORS['INFO']}beat{ColorFormatter.COLORS['RESET']}               Run Celery Beat (daily automation schedule)
    {ColorFormatter.COLORS['INFO']}init-db{ColorFormatter.COLORS['RESET']}            Run Alembic migrations
    {ColorFormatter.COLORS['INFO']}seed{ColorFormatter.COLORS['RESET']}               Insert development seed data
    {ColorFormatter.COLORS['INFO']}create-agent{ColorFormatter.COLORS['RESET']}       EMAIL PASSWORD [NAME]  Create or reset the agent login
    {ColorFormatter.COLORS['INFO']}run-automation{ColorFormatter.COLORS['RESET']}     Send today's birthday wishes and renewal reminders
    {ColorFormatter.COLORS['INFO']}expire-policies{ColorFormatter.COLORS['RESET']}    Mark past-due Active policies as Expired
    {ColorFormatter.COLORS['INFO']}validate-policies{ColorFormatter.COLORS['RESET']}  Check legacy policies before migrating
    {ColorFormatter.COLORS['INFO']}backup-policies{ColorFormatter.COLORS['RESET']}    Snapshot the legacy policies table
    {ColorFormatter.COLORS['INFO']}migrate-policies{ColorFormatter.COLORS['RESET']}   Move legacy policies to templates and instances
    {ColorFormatter.COLORS['INFO']}verify-migration{ColorFormatter.COLORS['RESET']}   Check templates and instances after migrating
    {ColorFormatter.COLORS['INFO']}migration-status{ColorFormatter.COLORS['RESET']}   Show legacy / template / instance row counts
    {ColorFormatter.COLORS['WARNING']}rollback-policies{ColorFormatter.COLORS['RESET']}  BACKUP_ID  Restore legacy policies from a backup
    {ColorFormatter.COLORS['WARNING']}cleanup-policies{ColorFormatter.COLORS['RESET']}   Delete legacy policies (final backup unless --no-backup)
    {ColorFormatter.COLORS['INFO']}integrity-check{ColorFormatter.COLORS['RESET']}    Report policy data integrity

{ColorFormatter.COLORS['BOLD']}Options:{ColorFormatter.COLORS['RESET']}
    --reload          Auto-reload the API on code changes
    --port=N          API port (default 8000)
    --dry-run         Simulate 'migrate-policies' without writing
    --batch-size=N    Legacy rows per batch (default 100)
    --no-backup       Skip the JSON backup before migrating or cleaning up
    --strict          Treat existing templates/instances as errors

{ColorFormatter.COLORS['BOLD']}Examples:{ColorFormatter.COLORS['RESET']}
    python manage.py init-db
    python manage.py create-agent agent@example.com 'a-long-password' "Priya Sharma"
    python manage.py migrate-policies --dry-run
    python manage.py rollback-policies policy_backup_1767225600000
"""


def _option(opts: List[str], name: str) -> Optional[str]:
    for o in opts:
        if o.startswith(f"{name}="):
            return o.split("=", 1)[1]
    return None


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    command = sys.argv[1]
    opts = sys.argv[2:]
    args = [o for o in opts if not o.startswith("--")]

    mgr = CRMManager()

    try:
        if command == "serve":
            mgr.serve(reload="--reload" in opts, port=int(_option(opts, "--port") or 8000))
        elif command == "worker":
            mgr.worker()
        elif command == "beat":
            mgr.beat()
        elif command == "init-db":
            mgr.init_db()
        elif command == "seed":
            mgr.seed()
        elif command == "create-agent":
            if len(args) < 2:
                logger.error("Usage: python manage.py create-agent EMAIL PASSWORD [NAME]")
                sys.exit(1)
            mgr.create_agent(args[0], args[1], " ".join(args[2:]) or None)
        elif command == "run-automation":
            mgr.run_automation()
        elif command == "expire-policies":
            mgr.expire_policies()
        elif command == "validate-policies":
            mgr.validate_policies()
        elif command == "backup-policies":
            mgr.backup_policies()
        elif command == "verify-migration":
            mgr.verify_migration()
        elif command == "cleanup-policies":
            mgr.cleanup_policies(create_backup="--no-backup" not in opts)
        elif command == "migration-status":
            mgr.migration_status()
        elif command == "migrate-policies":
            batch = _option(opts, "--batch-size")
            mgr.migrate_policies(
                dry_run="--dry-run" in opts,
                batch_size=int(batch) if batch else None,
                create_backup="--no-backup" not in opts,
                strict="--strict" in opts,
            )
        elif command == "rollback-policies":
            if not args:
                logger.error("Usage: python manage.py rollback-policies BACKUP_ID")
                sys.exit(1)
            mgr.rollback_policies(args[0])
        elif command == "integrity-check":
            mgr.integrity_check()
        else:
            logger.error(f"Unknown command: {command}")
            print(USAGE)
            sys.exit(1)
    except Exception as exc:
        logger.error(f"Operation failed: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
