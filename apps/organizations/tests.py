import json
from uuid import uuid4

from django.test import Client, TestCase

from apps.core.exceptions import Conflict, Forbidden, NotFound
from apps.core.tests.factories import auth_header, grant, make_company, make_condo, make_superadmin, make_unit, make_user
from apps.identity.models import Role, UserRole
from apps.organizations.dtos import CompanyIn, CondoIn, CondoUpdate
from apps.organizations.models import Company
from apps.organizations import services


class CompanyServiceTest(TestCase):
    def setUp(self):
        self.root = make_superadmin("root")
        self.director = make_user("director")

    def test_create_company_grants_admin(self):
        company = services.create_company(
            CompanyIn(name="Northern UK", inn="7701234567", admin_user_id=self.director.id),
            created_by=self.root,
        )
        grant_row = UserRole.objects.get(user=self.director, company=company)
        self.assertEqual(grant_row.role, Role.COMPANY_ADMIN)
        self.assertEqual(grant_row.granted_by, self.root)

    def test_only_superadmin_creates_companies(self):
        with self.assertRaises(Forbidden):
            services.create_company(CompanyIn(name="Rogue"), created_by=self.director)
        self.assertFalse(Company.objects.filter(name="Rogue").exists())

    def test_inn_is_unique_among_live_companies(self):
        first = services.create_company(CompanyIn(name="A", inn="123"), created_by=self.root)
        with self.assertRaises(Conflict):
            services.create_company(CompanyIn(name="B", inn="123"), created_by=self.root)

        services.delete_company(first.id, performed_by=self.root)
        services.create_company(CompanyIn(name="C", inn="123"), created_by=self.root)

    def test_delete_company_with_condos(self):
        company = make_company()
        make_condo(company)
        with self.assertRaises(Conflict):
            services.delete_company(company.id, performed_by=self.root)

    def test_list_companies_is_tenant_scoped(self):
        mine = make_company("Mine")
        theirs = make_company("Theirs")
        grant(self.director, Role.COMPANY_ADMIN, company=mine)
        guard = make_user()
        grant(guard, Role.SECURITY_GUARD, condo=make_condo(theirs))

        self.assertEqual(services.list_companies_for_user(self.director.id), [mine])
        self.assertEqual(services.list_companies_for_user(guard.id), [theirs])
        self.assertEqual(len(services.list_companies_for_user(self.root.id)), 2)


class CondoServiceTest(TestCase):
    def setUp(self):
        self.company = make_company()
        self.director = make_user("director")
        grant(self.director, Role.COMPANY_ADMIN, company=self.company)
        self.condo = make_condo(self.company, "Riverside")
        self.manager = make_user("manager")
        grant(self.manager, Role.CONDO_ADMIN, condo=self.condo)

    def test_company_admin_creates_condos(self):
        condo = services.create_condo(self.company.id, CondoIn(name="Hillside"), performed_by=self.director)
        self.assertEqual(condo.company_id, self.company.id)

        with self.assertRaises(Forbidden):
            services.create_condo(self.company.id, CondoIn(name="Nope"), performed_by=self.manager)
        with self.assertRaises(NotFound):
            services.create_condo(uuid4(), CondoIn(name="Nope"), performed_by=self.director)

    def test_condo_admin_updates_own_condo(self):
        condo = services.update_condo(self.condo.id, CondoUpdate(address="1 River St"), performed_by=self.manager)
        self.assertEqual(condo.address, "1 River St")
        self.assertEqual(condo.name, "Riverside")

        other = make_condo(self.company)
        with self.assertRaises(Forbidden):
            services.update_condo(other.id, CondoUpdate(name="X"), performed_by=self.manager)

    def test_condo_visibility(self):
        other = make_condo(self.company, "Hillside")
        self.assertEqual(services.list_condos_for_user(self.company.id, self.manager.id), [self.condo])
        self.assertEqual(
            services.list_condos_for_user(self.company.id, self.director.id), [other, self.condo]
        )

    def test_delete_condo(self):
        unit = make_unit(self.condo)
        with self.assertRaises(Conflict):
            services.delete_condo(self.condo.id, performed_by=self.director)

        unit.soft_delete()
        with self.assertRaises(Forbidden):
            services.delete_condo(self.condo.id, performed_by=self.manager)
        services.delete_condo(self.condo.id, performed_by=self.director)
        self.assertIsNone(services.get_condo(self.condo.id))


class OrganizationsAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.root = make_superadmin("root")
        self.company = make_company("Northern UK")
        self.director = make_user("director")
        grant(self.director, Role.COMPANY_ADMIN, company=self.company)
        self.stranger = make_user("stranger")

    def test_create_company_endpoint(self):
        response = self.client.post(
            "/api/companies/",
            data=json.dumps({"name": "Southern UK"}),
            content_type="application/json",
            **auth_header(self.root),
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["name"], "Southern UK")

        denied = self.client.post(
            "/api/companies/",
            data=json.dumps({"name": "Rogue"}),
            content_type="application/json",
            **auth_header(self.director),
        )
        self.assertEqual(denied.status_code, 403)

    def test_company_detail_access(self):
        url = f"/api/companies/{self.company.id}"
        self.assertEqual(self.client.get(url).status_code, 401)
        self.assertEqual(self.client.get(url, **auth_header(self.director)).status_code, 200)
        self.assertEqual(self.client.get(url, **auth_header(self.stranger)).status_code, 403)
        self.assertEqual(self.client.get(f"/api/companies/{uuid4()}", **auth_header(self.stranger)).status_code, 404)

    def test_condo_endpoints(self):
        created = self.client.post(
            f"/api/companies/{self.company.id}/condos",
            data=json.dumps({"name": "Riverside", "address": "1 River St"}),
            content_type="application/json",
            **auth_header(self.director),
        )
        self.assertEqual(created.status_code, 201)
        condo_id = created.json()["id"]

        listed = self.client.get(f"/api/companies/{self.company.id}/condos", **auth_header(self.director))
        self.assertEqual([c["id"] for c in listed.json()], [condo_id])

        self.assertEqual(self.client.get(f"/api/companies/condos/{condo_id}", **auth_header(self.stranger)).status_code, 403)
        self.assertEqual(self.client.delete(f"/api/companies/condos/{condo_id}", **auth_header(self.director)).status_code, 204)
        self.assertEqual(self.client.get(f"/api/companies/condos/{condo_id}", **auth_header(self.director)).status_code, 404)
