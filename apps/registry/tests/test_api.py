"""
API tests for units and residents.
"""
import json
from uuid import uuid4

from django.test import Client, TestCase

from apps.core.tests.factories import auth_header, grant, make_company, make_condo, make_superadmin, make_unit, make_user
from apps.identity.models import Role
from apps.registry.models import Resident, Unit
from apps.registry.resident_service import ResidentService


class RegistryAPITestCase(TestCase):

    def setUp(self):
        self.client = Client()
        self.company = make_company()
        self.condo = make_condo(self.company, "Riverside")
        self.other_condo = make_condo(make_company(), "Hillside")
        self.unit = make_unit(self.condo, "12A")

        self.director = make_user("director")
        grant(self.director, Role.COMPANY_ADMIN, company=self.company)
        self.manager = make_user("manager")
        grant(self.manager, Role.CONDO_ADMIN, condo=self.condo)
        self.guard = make_user("guard")
        grant(self.guard, Role.SECURITY_GUARD, condo=self.condo)
        self.stranger = make_user("stranger")

    def post_json(self, url, payload, user):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json", **auth_header(user))

    def patch_json(self, url, payload, user):
        return self.client.patch(url, data=json.dumps(payload), content_type="application/json", **auth_header(user))


class UnitAPITest(RegistryAPITestCase):

    def test_create_and_list_units(self):
        response = self.post_json(f"/api/registry/condos/{self.condo.id}/units", {"number": "14B", "floor": 14}, self.manager)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["number"], "14B")

        listed = self.client.get(f"/api/registry/condos/{self.condo.id}/units", **auth_header(self.guard))
        self.assertEqual([u["number"] for u in listed.json()], ["12A", "14B"])

        searched = self.client.get(f"/api/registry/condos/{self.condo.id}/units?search=14", **auth_header(self.guard))
        self.assertEqual(len(searched.json()), 1)

    def test_duplicate_unit_number(self):
        response = self.post_json(f"/api/registry/condos/{self.condo.id}/units", {"number": "12A"}, self.manager)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "conflict")

    def test_staff_cannot_create_units(self):
        response = self.post_json(f"/api/registry/condos/{self.condo.id}/units", {"number": "1"}, self.guard)
        self.assertEqual(response.status_code, 403)

    def test_foreign_condo_is_forbidden(self):
        response = self.client.get(f"/api/registry/condos/{self.other_condo.id}/units", **auth_header(self.manager))
        self.assertEqual(response.status_code, 403)

    def test_missing_targets_are_404_before_403(self):
        self.assertEqual(
            self.client.get(f"/api/registry/condos/{uuid4()}/units", **auth_header(self.stranger)).status_code, 404
        )
        self.assertEqual(
            self.client.get(f"/api/registry/units/{uuid4()}", **auth_header(self.stranger)).status_code, 404
        )
        self.assertEqual(
            self.client.get(f"/api/registry/units/{self.unit.id}", **auth_header(self.stranger)).status_code, 403
        )

    def test_update_unit(self):
        response = self.patch_json(f"/api/registry/units/{self.unit.id}", {"floor": 12}, self.manager)
        self.assertEqual(response.status_code, 200)
        self.unit.refresh_from_db()
        self.assertEqual(self.unit.floor, 12)

    def test_delete_unit_blocked_by_active_residents(self):
        resident = ResidentService.create_resident(user_id=make_user().id, unit_id=self.unit.id)

        blocked = self.client.delete(f"/api/registry/units/{self.unit.id}", **auth_header(self.manager))
        self.assertEqual(blocked.status_code, 409)

        ResidentService.move_out_resident(resident.id)
        deleted = self.client.delete(f"/api/registry/units/{self.unit.id}", **auth_header(self.manager))
        self.assertEqual(deleted.status_code, 204)

        self.assertIsNotNone(Unit.objects.get(id=self.unit.id).deleted_at)
        self.assertEqual(self.client.get(f"/api/registry/units/{self.unit.id}", **auth_header(self.manager)).status_code, 404)

    def test_requires_auth(self):
        self.assertEqual(self.client.get(f"/api/registry/units/{self.unit.id}").status_code, 401)


class ResidentAPITest(RegistryAPITestCase):

    def test_condo_admin_adds_tenant(self):
        tenant = make_user()
        response = self.post_json(
            "/api/registry/residents", {"user_id": str(tenant.id), "unit_id": str(self.unit.id)}, self.manager
        )
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.json()["is_owner"])
        self.assertTrue(response.json()["is_active"])

        duplicate = self.post_json(
            "/api/registry/residents", {"user_id": str(tenant.id), "unit_id": str(self.unit.id)}, self.manager
        )
        self.assertEqual(duplicate.status_code, 409)

    def test_owner_assignment_needs_company_admin(self):
        owner = make_user()
        payload = {"user_id": str(owner.id), "unit_id": str(self.unit.id), "is_owner": True}

        self.assertEqual(self.post_json("/api/registry/residents", payload, self.manager).status_code, 403)
        self.assertEqual(self.post_json("/api/registry/residents", payload, self.director).status_code, 201)

        owner_response = self.client.get(f"/api/registry/units/{self.unit.id}/owner", **auth_header(self.guard))
        self.assertEqual(owner_response.status_code, 200)
        self.assertEqual(owner_response.json()["user_id"], str(owner.id))

        second = {"user_id": str(make_user().id), "unit_id": str(self.unit.id), "is_owner": True}
        self.assertEqual(self.post_json("/api/registry/residents", second, self.director).status_code, 409)

    def test_owner_endpoint_without_owner(self):
        response = self.client.get(f"/api/registry/units/{self.unit.id}/owner", **auth_header(self.manager))
        self.assertEqual(response.status_code, 204)

    def test_create_on_missing_unit(self):
        payload = {"user_id": str(make_user().id), "unit_id": str(uuid4())}
        self.assertEqual(self.post_json("/api/registry/residents", payload, self.stranger).status_code, 404)

    def test_guard_cannot_add_residents(self):
        payload = {"user_id": str(make_user().id), "unit_id": str(self.unit.id)}
        self.assertEqual(self.post_json("/api/registry/residents", payload, self.guard).status_code, 403)

    def test_paginated_listing(self):
        for _ in range(3):
            ResidentService.create_resident(user_id=make_user().id, unit_id=self.unit.id)

        response = self.client.get(
            f"/api/registry/units/{self.unit.id}/residents?page=2&limit=2", **auth_header(self.manager)
        )
        data = response.json()
        self.assertEqual(data["total"], 3)
        self.assertEqual(data["total_pages"], 2)
        self.assertEqual(len(data["items"]), 1)

    def test_resident_sees_own_unit_but_cannot_manage(self):
        tenant = make_user()
        resident = ResidentService.create_resident(user_id=tenant.id, unit_id=self.unit.id)

        self.assertEqual(self.client.get(f"/api/registry/units/{self.unit.id}", **auth_header(tenant)).status_code, 200)
        self.assertEqual(
            self.client.get(f"/api/registry/residents/{resident.id}", **auth_header(tenant)).status_code, 200
        )
        move_out = self.post_json(f"/api/registry/residents/{resident.id}/move-out", {}, tenant)
        self.assertEqual(move_out.status_code, 403)

    def test_move_out_and_residences(self):
        tenant = make_user()
        resident = ResidentService.create_resident(user_id=tenant.id, unit_id=self.unit.id)

        mine = self.client.get("/api/registry/me/residences", **auth_header(tenant))
        self.assertEqual(mine.json()[0]["unit_number"], "12A")
        self.assertEqual(mine.json()[0]["condo_name"], "Riverside")

        response = self.post_json(f"/api/registry/residents/{resident.id}/move-out", {}, self.manager)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["is_active"])
        self.assertIsNotNone(response.json()["moved_out_at"])

        # Moving out twice is harmless
        again = self.post_json(f"/api/registry/residents/{resident.id}/move-out", {}, self.manager)
        self.assertEqual(again.status_code, 200)

        self.assertEqual(self.client.get("/api/registry/me/residences", **auth_header(tenant)).json(), [])
        history = self.client.get("/api/registry/me/residences?include_inactive=true", **auth_header(tenant))
        self.assertEqual(len(history.json()), 1)

    def test_other_users_residences(self):
        tenant = make_user()
        ResidentService.create_resident(user_id=tenant.id, unit_id=self.unit.id)
        url = f"/api/registry/users/{tenant.id}/residences"

        denied = self.client.get(url, **auth_header(self.manager))
        self.assertEqual(denied.status_code, 403)
        self.assertEqual(denied.json()["error"], "forbidden")
        self.assertEqual(len(self.client.get(url, **auth_header(make_superadmin())).json()), 1)

    def test_update_and_delete_resident(self):
        resident = ResidentService.create_resident(user_id=make_user().id, unit_id=self.unit.id)
        url = f"/api/registry/residents/{resident.id}"

        empty = self.patch_json(url, {}, self.manager)
        self.assertEqual(empty.status_code, 400)

        promoted = self.patch_json(url, {"is_owner": True}, self.director)
        self.assertEqual(promoted.status_code, 200)
        self.assertTrue(promoted.json()["is_owner"])

        self.assertEqual(self.client.delete(url, **auth_header(self.manager)).status_code, 204)
        self.assertIsNotNone(Resident.objects.get(id=resident.id).deleted_at)
        self.assertEqual(self.client.get(url, **auth_header(self.manager)).status_code, 404)
