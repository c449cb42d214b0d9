import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.repositories import legacy_policies as legacy_repository
from app.repositories import policy_instances as instance_repository
from app.repositories import policy_templates as template_repository
from app.services import policy_migration as migration_service


@pytest.fixture
def make_legacy(db):
    async def factory(client_id, policy_number="LP-1", **overrides):
        data = {
            "client_id": client_id,
            "policy_number": policy_number,
            "policy_type": "Health",
            "provider": "Star Health",
            "premium_amount": Decimal("10000.00"),
            "commission_amount": Decimal("1000.00"),
            "status": "Active",
            "start_date": date(2025, 4, 1),
            "expiry_date": date(2026, 4, 1),
        }
        data.update(overrides)
        return await legacy_repository.create_legacy_policy(db, **data)

    return factory


@pytest.fixture
async def legacy_book(db, make_client, make_legacy):
    """Two clients sharing LP-1, the first also holding LP-2."""
    ravi = await make_client()
    meena = await make_client(first_name="Meena", last_name="Pillai")
    await make_legacy(ravi.id, "LP-1")
    await make_legacy(meena.id, "LP-1", premium_amount=Decimal("15000.00"))
    await make_legacy(ravi.id, "LP-2", policy_type="Life", provider="LIC")
    await db.commit()
    return ravi, meena


class TestValidation:
    async def test_empty_table_is_valid_with_warning(self, db):
        report = await migration_service.validate_policy_data(db)
        assert report.is_valid is True
        assert report.warnings == ["No policies found to migrate"]

    async def test_shared_numbers_warn(self, db, legacy_book):
        report = await migration_service.validate_policy_data(db)
        assert report.is_valid is True
        assert report.total_policies == 3
        assert report.unique_templates == 2
        assert any("shared by multiple policies" in w for w in report.warnings)

    async def test_orphans_and_missing_fields_block(self, db, make_legacy):
        await make_legacy(uuid.uuid4(), "LP-9")
        await make_legacy(None, "LP-10", provider=None)
        await db.commit()

        report = await migration_service.validate_policy_data(db)
        assert report.is_valid is False
        assert "1 policies reference non-existent clients" in report.errors
        assert any("missing required fields" in e for e in report.errors)

        result = await migration_service.migrate_policies(db)
        assert result.success is False
        assert result.templates_created == 0


class TestMigration:
    async def test_migrates_with_backup(self, db, legacy_book):
        ravi, meena = legacy_book
        result = await migration_service.migrate_policies(db)
        await db.commit()

        assert result.success is True
        assert result.backup_id.startswith("policy_backup_")
        assert result.templates_created == 2
        assert result.instances_created == 3
        assert result.policies_migrated == 3
        assert result.errors == []

        shared = await template_repository.get_template_by_number(db, "LP-1")
        holders = await instance_repository.list_for_template(db, shared.id)
        assert {i.client_id for i in holders} == {ravi.id, meena.id}
        assert {i.premium_amount for i in holders} == {Decimal("10000.00"), Decimal("15000.00")}

        backup = await legacy_repository.get_backup(db, result.backup_id)
        assert backup.row_count == 3

    async def test_dry_run_writes_nothing(self, db, legacy_book):
        result = await migration_service.migrate_policies(db, dry_run=True)

        assert result.dry_run is True
        assert result.backup_id is None
        assert result.templates_created == 2
        assert result.instances_created == 3
        assert await template_repository.count_templates(db) == 0
        assert await instance_repository.count_instances(db) == 0
        assert await legacy_repository.list_backups(db) == []

    async def test_small_batches_cover_every_row(self, db, legacy_book):
        result = await migration_service.migrate_policies(db, batch_size=1, create_backup=False)
        assert result.policies_migrated == 3
        assert await instance_repository.count_instances(db) == 3

    async def test_rerun_reuses_existing_rows(self, db, legacy_book):
        await migration_service.migrate_policies(db, create_backup=False)
        await db.commit()

        again = await migration_service.migrate_policies(db, create_backup=False, skip_duplicates=True)
        assert again.success is True
        assert again.templates_created == 0
        assert again.instances_created == 0
        assert again.policies_migrated == 3
        assert again.duplicate_templates == 5
        assert await template_repository.count_templates(db) == 2

    async def test_rerun_without_skip_reports_errors(self, db, legacy_book):
        await migration_service.migrate_policies(db, create_backup=False)
        await db.commit()

        again = await migration_service.migrate_policies(db, create_backup=False, skip_duplicates=False)
        assert again.success is False
        assert again.skipped_policies == 3
        assert "Template already exists for policy LP-1" in again.errors

    async def test_rows_without_dates_are_skipped(self, db, legacy_book, make_legacy):
        ravi, _ = legacy_book
        await make_legacy(ravi.id, "LP-3", start_date=None)
        await db.commit()

        result = await migration_service.migrate_policies(db, create_backup=False)
        assert result.success is True
        assert result.policies_migrated == 3
        assert result.skipped_policies == 1
        assert result.errors == ["Skipped policy LP-3: Start and expiry dates are required"]

    async def test_number_used_by_other_template(self, db, legacy_book, make_template):
        await make_template(policy_number="LP-2", policy_type="Auto", provider="Bajaj Allianz")
        await db.commit()

        result = await migration_service.migrate_policies(db, create_backup=False)
        assert result.policies_migrated == 2
        assert "Policy number LP-2 is already used by a different template" in result.errors


class TestRollback:
    async def test_restores_legacy_table(self, db, session_factory, legacy_book):
        result = await migration_service.migrate_policies(db)
        await db.commit()

        async with session_factory() as session:
            rollback = await migration_service.rollback_migration(session, result.backup_id)
            await session.commit()
        assert rollback.success is True
        assert rollback.restored == 3

        async with session_factory() as session:
            assert await template_repository.count_templates(session) == 0
            assert await instance_repository.count_instances(session) == 0
            restored = await legacy_repository.list_policies(session)
            assert sorted(p.policy_number for p in restored) == ["LP-1", "LP-1", "LP-2"]
            assert {p.premium_amount for p in restored} == {Decimal("10000.00"), Decimal("15000.00")}
            assert {p.expiry_date for p in restored} == {date(2026, 4, 1)}

    async def test_unknown_backup(self, db):
        rollback = await migration_service.rollback_migration(db, "policy_backup_0")
        assert rollback.success is False
        assert rollback.error == "Backup policy_backup_0 not found"


class TestVerification:
    async def test_clean_migration_passes(self, db, legacy_book):
        await migration_service.migrate_policies(db, create_backup=False)
        await db.commit()

        result = await migration_service.verify_migration_integrity(db)
        assert result.success is True
        assert [c.name for c in result.checks] == [
            "Policy to Instance Count Match",
            "No Orphaned Instances",
            "Template Uniqueness",
            "Instance Uniqueness",
            "Data Consistency",
        ]
        assert result.checks[0].details == "Policies: 3, Instances: 3"

    async def test_count_mismatch_and_bad_amounts_fail(self, db, legacy_book, make_template):
        ravi, _ = legacy_book
        template = await make_template()
        await instance_repository.create_instance(
            db,
            policy_template_id=template.id,
            client_id=ravi.id,
            premium_amount=Decimal("5000.00"),
            commission_amount=Decimal("-1.00"),
            status="Active",
            start_date=date(2025, 1, 1),
            expiry_date=date(2026, 1, 1),
        )
        await db.commit()

        result = await migration_service.verify_migration_integrity(db, today=date(2025, 6, 1))
        checks = {c.name: c for c in result.checks}
        assert result.success is False
        assert checks["Policy to Instance Count Match"].passed is False
        assert checks["Data Consistency"].details == "Invalid instances: 1"
        assert checks["No Orphaned Instances"].passed is True
        assert result.to_dict()["success"] is False


class TestCleanup:
    async def test_deletes_legacy_rows_behind_final_backup(self, db, legacy_book):
        await migration_service.migrate_policies(db, create_backup=False)
        await db.commit()

        cleanup = await migration_service.cleanup_old_policies(db)
        await db.commit()

        assert cleanup.success is True
        assert cleanup.deleted_count == 3
        assert await legacy_repository.count_policies(db) == 0
        backup = await legacy_repository.get_backup(db, cleanup.backup_id)
        assert backup.row_count == 3
        assert await instance_repository.count_instances(db) == 3

    async def test_without_backup(self, db, legacy_book):
        cleanup = await migration_service.cleanup_old_policies(db, create_final_backup=False)
        assert cleanup.success is True
        assert cleanup.backup_id is None
        assert await legacy_repository.list_backups(db) == []


class TestStatus:
    async def test_states_follow_the_migration(self, db, legacy_book):
        status = await migration_service.get_migration_status(db)
        assert (status.legacy_policies, status.templates, status.instances) == (3, 0, 0)
        assert status.state == "ready"

        await migration_service.migrate_policies(db, create_backup=False)
        assert (await migration_service.get_migration_status(db)).state == "partial"

        await migration_service.cleanup_old_policies(db, create_final_backup=False)
        status = await migration_service.get_migration_status(db)
        assert status.state == "completed"
        assert status.to_dict() == {"legacy_policies": 0, "templates": 2, "instances": 3, "state": "completed"}

    async def test_empty_database(self, db):
        assert (await migration_service.get_migration_status(db)).state == "empty"
