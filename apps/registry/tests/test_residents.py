"""
Tests for the Resident Lifecycle Manager.

Covers:
1. create_resident - duplicates, ownership rules, resident role grant
2. move_out_resident - role sync across several units in one condo
3. update_resident - date rules, ownership transfer, reactivation
4. delete / list / owner lookups
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock
from uuid import uuid4

from django.core import mail
from django.db import IntegrityError
from django.test import TestCase
from django.utils import timezone

from apps.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from apps.core.tests.factories import grant, make_company, make_condo, make_unit, make_user
from apps.governance.audit_service import AuditAction
from apps.governance.models import AuditLog
from apps.identity.models import Role, UserRole
from apps.registry.models import Resident
from apps.registry.resident_service import (
    ALREADY_OWNED,
    ALREADY_RESIDENT,
    OWNER_CONSTRAINT,
    ResidentService,
    _conflict_from,
)


def resident_role(user, condo):
    return UserRole.objects.filter(user=user, condo=condo, role=Role.RESIDENT, deleted_at__isnull=True).first()


class ResidentServiceTestBase(TestCase):

    def setUp(self):
        self.company = make_company()
        self.condo = make_condo(self.company)
        self.other_condo = make_condo(self.company)
        self.unit = make_unit(self.condo, "101")
        self.unit2 = make_unit(self.condo, "102")
        self.far_unit = make_unit(self.other_condo, "201")

        self.director = make_user("director")
        grant(self.director, Role.COMPANY_ADMIN, company=self.company)
        self.manager = make_user("manager")
        grant(self.manager, Role.CONDO_ADMIN, condo=self.condo)

        self.user = make_user("tenant")


class CreateResidentTest(ResidentServiceTestBase):

    def test_create_resident_grants_condo_resident_role(self):
        resident = ResidentService.create_resident(self.user.id, self.unit.id, performed_by=self.manager)

        self.assertTrue(resident.is_active)
        self.assertFalse(resident.is_owner)
        self.assertIsNotNone(resident.moved_in_at)

        role = resident_role(self.user, self.condo)
        self.assertIsNotNone(role)
        self.assertTrue(role.is_active)

    def test_duplicate_residency_is_conflict(self):
        ResidentService.create_resident(self.user.id, self.unit.id)
        with self.assertRaises(Conflict) as ctx:
            ResidentService.create_resident(self.user.id, self.unit.id)
        self.assertIn("already an active resident", ctx.exception.message)
        self.assertEqual(Resident.objects.active().filter(user=self.user, unit=self.unit).count(), 1)

    def test_missing_user_or_unit_is_not_found(self):
        with self.assertRaises(NotFound):
            ResidentService.create_resident(uuid4(), self.unit.id)
        with self.assertRaises(NotFound):
            ResidentService.create_resident(self.user.id, uuid4())

    def test_deleted_unit_is_not_found(self):
        self.unit.soft_delete()
        with self.assertRaises(NotFound):
            ResidentService.create_resident(self.user.id, self.unit.id)

    def test_condo_admin_cannot_assign_owner(self):
        with self.assertRaises(Forbidden):
            ResidentService.create_resident(self.user.id, self.unit.id, is_owner=True, performed_by=self.manager)
        self.assertFalse(Resident.objects.filter(unit=self.unit).exists())

    def test_company_admin_assigns_single_owner(self):
        owner = ResidentService.create_resident(self.user.id, self.unit.id, is_owner=True, performed_by=self.director)
        self.assertTrue(owner.is_owner)

        with self.assertRaises(Conflict) as ctx:
            ResidentService.create_resident(make_user().id, self.unit.id, is_owner=True, performed_by=self.director)
        self.assertIn("already has an owner", ctx.exception.message)

    def test_owner_race_caught_by_constraint_reports_ownership(self):
        ResidentService.create_resident(self.user.id, self.unit.id, is_owner=True)

        # Both requests saw a free slot; the database constraint decides
        with mock.patch.object(ResidentService, '_ensure_owner_slot_free'):
            with self.assertRaises(Conflict) as ctx:
                ResidentService.create_resident(make_user().id, self.unit.id, is_owner=True)
        self.assertEqual(ctx.exception.message, ALREADY_OWNED)

    def test_constraint_name_selects_conflict(self):
        def violation(constraint_name):
            error = IntegrityError("duplicate key value")
            error.__cause__ = mock.Mock(diag=mock.Mock(constraint_name=constraint_name))
            return error

        owned = _conflict_from(violation(OWNER_CONSTRAINT), self.unit.id, is_owner=True)
        resident = _conflict_from(violation('residents_user_unit_active_unique'), self.unit.id, is_owner=True)
        self.assertEqual(owned.message, ALREADY_OWNED)
        self.assertEqual(resident.message, ALREADY_RESIDENT)

    def test_future_move_in_is_invalid(self):
        with self.assertRaises(InvalidInput):
            ResidentService.create_resident(
                self.user.id, self.unit.id, moved_in_at=timezone.now() + timedelta(days=2)
            )

    def test_move_in_before_floor_is_invalid(self):
        with self.assertRaises(InvalidInput):
            ResidentService.create_resident(
                self.user.id, self.unit.id, moved_in_at=datetime(1899, 12, 31, tzinfo=dt_timezone.utc)
            )

    def test_create_writes_audit_log(self):
        resident = ResidentService.create_resident(self.user.id, self.unit.id, performed_by=self.manager)
        log = AuditLog.objects.get(action=AuditAction.CREATE_RESIDENT, target_id=resident.id)
        self.assertEqual(log.company_id, self.company.id)
        self.assertEqual(log.performed_by, self.manager)

    def test_welcome_email_sent_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            ResidentService.create_resident(self.user.id, self.unit.id)

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.user.email])


class MoveOutResidentTest(ResidentServiceTestBase):

    def test_move_out_then_recreate(self):
        resident = ResidentService.create_resident(self.user.id, self.unit.id)
        moved = ResidentService.move_out_resident(resident.id)

        self.assertFalse(moved.is_active)
        self.assertIsNotNone(moved.moved_out_at)
        self.assertFalse(resident_role(self.user, self.condo).is_active)

        again = ResidentService.create_resident(self.user.id, self.unit.id)
        self.assertNotEqual(again.id, resident.id)
        self.assertTrue(again.is_active)
        # The same grant row is reactivated rather than duplicated
        grants = UserRole.objects.filter(user=self.user, condo=self.condo, role=Role.RESIDENT)
        self.assertEqual(grants.count(), 1)
        self.assertTrue(grants.get().is_active)

    def test_role_kept_while_another_unit_in_condo_is_active(self):
        first = ResidentService.create_resident(self.user.id, self.unit.id)
        second = ResidentService.create_resident(self.user.id, self.unit2.id)

        ResidentService.move_out_resident(first.id)
        self.assertTrue(resident_role(self.user, self.condo).is_active)

        ResidentService.move_out_resident(second.id)
        self.assertFalse(resident_role(self.user, self.condo).is_active)

    def test_units_in_other_condos_do_not_keep_role(self):
        here = ResidentService.create_resident(self.user.id, self.unit.id)
        ResidentService.create_resident(self.user.id, self.far_unit.id)

        ResidentService.move_out_resident(here.id)

        self.assertFalse(resident_role(self.user, self.condo).is_active)
        self.assertTrue(resident_role(self.user, self.other_condo).is_active)

    def test_move_out_is_idempotent(self):
        resident = ResidentService.create_resident(self.user.id, self.unit.id)
        first = ResidentService.move_out_resident(resident.id)
        second = ResidentService.move_out_resident(resident.id)
        self.assertEqual(first.moved_out_at, second.moved_out_at)
        self.assertEqual(
            AuditLog.objects.filter(action=AuditAction.MOVE_OUT_RESIDENT, target_id=resident.id).count(), 1
        )

    def test_move_out_unknown_resident(self):
        with self.assertRaises(NotFound):
            ResidentService.move_out_resident(uuid4())

    def test_moved_out_owner_frees_ownership(self):
        owner = ResidentService.create_resident(self.user.id, self.unit.id, is_owner=True)
        ResidentService.move_out_resident(owner.id)

        new_owner = ResidentService.create_resident(make_user().id, self.unit.id, is_owner=True)
        self.assertTrue(new_owner.is_owner)


class UpdateResidentTest(ResidentServiceTestBase):

    def setUp(self):
        super().setUp()
        self.resident = ResidentService.create_resident(
            self.user.id, self.unit.id, moved_in_at=timezone.now() - timedelta(days=30)
        )

    def test_nothing_to_update(self):
        with self.assertRaises(InvalidInput):
            ResidentService.update_resident(self.resident.id)

    def test_move_dates_must_be_ordered(self):
        with self.assertRaises(InvalidInput):
            ResidentService.update_resident(
                self.resident.id,
                is_active=False,
                moved_out_at=self.resident.moved_in_at - timedelta(days=1),
            )

    def test_future_dates_rejected(self):
        with self.assertRaises(InvalidInput):
            ResidentService.update_resident(self.resident.id, moved_in_at=timezone.now() + timedelta(days=1))

    def test_ownership_change_requires_company_admin(self):
        with self.assertRaises(Forbidden):
            ResidentService.update_resident(self.resident.id, is_owner=True, performed_by=self.manager)

        updated = ResidentService.update_resident(self.resident.id, is_owner=True, performed_by=self.director)
        self.assertTrue(updated.is_owner)

    def test_ownership_transfer_keeps_single_owner(self):
        other = ResidentService.create_resident(make_user().id, self.unit.id, is_owner=True)

        with self.assertRaises(Conflict):
            ResidentService.update_resident(self.resident.id, is_owner=True, performed_by=self.director)

        ResidentService.update_resident(other.id, is_owner=False, performed_by=self.director)
        updated = ResidentService.update_resident(self.resident.id, is_owner=True, performed_by=self.director)
        self.assertTrue(updated.is_owner)
        self.assertEqual(ResidentService.get_unit_owner(self.unit.id).id, self.resident.id)

    def test_deactivate_and_reactivate_sync_role(self):
        ResidentService.update_resident(self.resident.id, is_active=False)
        self.assertFalse(resident_role(self.user, self.condo).is_active)

        reactivated = ResidentService.update_resident(self.resident.id, is_active=True)
        self.assertTrue(reactivated.is_active)
        self.assertIsNone(reactivated.moved_out_at)
        self.assertTrue(resident_role(self.user, self.condo).is_active)

    def test_reactivation_clashing_with_newer_residency(self):
        ResidentService.move_out_resident(self.resident.id)
        ResidentService.create_resident(self.user.id, self.unit.id)

        with self.assertRaises(Conflict):
            ResidentService.update_resident(self.resident.id, is_active=True)

    def test_reactivation_accepts_move_in_after_previous_move_out(self):
        Resident.objects.filter(id=self.resident.id).update(
            moved_in_at=timezone.now() - timedelta(days=400),
            moved_out_at=timezone.now() - timedelta(days=300),
            is_active=False,
        )
        moved_in_at = timezone.now() - timedelta(days=10)

        reactivated = ResidentService.update_resident(self.resident.id, is_active=True, moved_in_at=moved_in_at)

        self.assertTrue(reactivated.is_active)
        self.assertEqual(reactivated.moved_in_at, moved_in_at)
        self.assertIsNone(Resident.objects.get(id=self.resident.id).moved_out_at)

    def test_move_out_date_needs_an_inactive_residency(self):
        with self.assertRaises(InvalidInput):
            ResidentService.update_resident(self.resident.id, moved_out_at=timezone.now() - timedelta(days=1))

        ResidentService.move_out_resident(self.resident.id)
        with self.assertRaises(InvalidInput):
            ResidentService.update_resident(
                self.resident.id, is_active=True, moved_out_at=timezone.now() - timedelta(days=1)
            )

        corrected = timezone.now() - timedelta(days=2)
        updated = ResidentService.update_resident(self.resident.id, moved_out_at=corrected)
        self.assertEqual(updated.moved_out_at, corrected)


class ResidentQueriesTest(ResidentServiceTestBase):

    def test_delete_resident_soft_deletes_and_syncs_role(self):
        resident = ResidentService.create_resident(self.user.id, self.unit.id)
        ResidentService.delete_resident(resident.id)

        resident.refresh_from_db()
        self.assertIsNotNone(resident.deleted_at)
        self.assertFalse(resident.is_active)
        self.assertIsNone(ResidentService.get_resident(resident.id))
        self.assertFalse(resident_role(self.user, self.condo).is_active)

        with self.assertRaises(NotFound):
            ResidentService.delete_resident(resident.id)

    def test_list_residents_paginates_owners_first(self):
        tenants = [ResidentService.create_resident(make_user().id, self.unit.id) for _ in range(3)]
        owner = ResidentService.create_resident(make_user().id, self.unit.id, is_owner=True)
        ResidentService.move_out_resident(tenants[0].id)

        page = ResidentService.list_residents_by_unit(self.unit.id, page=1, limit=2)
        self.assertEqual(page.total, 3)
        self.assertEqual(page.total_pages, 2)
        self.assertEqual(page.items[0].id, owner.id)

        everyone = ResidentService.list_residents_by_unit(self.unit.id, include_inactive=True, limit=500)
        self.assertEqual(everyone.total, 4)
        self.assertEqual(everyone.limit, 100)

    def test_list_units_by_user(self):
        ResidentService.create_resident(self.user.id, self.unit2.id)
        first = ResidentService.create_resident(self.user.id, self.unit.id)
        ResidentService.create_resident(self.user.id, self.far_unit.id)
        ResidentService.move_out_resident(first.id)

        active = ResidentService.list_units_by_user(self.user.id)
        self.assertEqual({r.unit_id for r in active}, {self.unit2.id, self.far_unit.id})

        history = ResidentService.list_units_by_user(self.user.id, include_inactive=True)
        self.assertEqual(len(history), 3)

    def test_get_unit_owner(self):
        self.assertIsNone(ResidentService.get_unit_owner(self.unit.id))
        owner = ResidentService.create_resident(self.user.id, self.unit.id, is_owner=True)
        self.assertEqual(ResidentService.get_unit_owner(self.unit.id).id, owner.id)
