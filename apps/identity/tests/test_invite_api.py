"""
Integration tests for the invite endpoints: public validation with the
abuse guard, authenticated acceptance, and admin management.
"""
import json
import secrets
from uuid import uuid4

from django.core.cache import cache
from django.test import Client, TestCase, override_settings

from apps.core.tests.factories import auth_header, grant, make_company, make_condo, make_unit, make_user
from apps.identity.invite_service import InviteService
from apps.identity.models import Invite, Role


class InviteAPITest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = Client()
        self.company = make_company()
        self.condo = make_condo(self.company)
        self.other_condo = make_condo(self.company)
        self.unit = make_unit(self.condo, "12A")
        self.other_unit = make_unit(self.other_condo, "7")

        self.admin = make_user("invite_admin")
        grant(self.admin, Role.CONDO_ADMIN, condo=self.condo)
        self.outsider = make_user("outsider")
        grant(self.outsider, Role.CONDO_ADMIN, condo=self.other_condo)

    def post_json(self, url, payload=None, user=None):
        extra = auth_header(user) if user else {}
        return self.client.post(url, data=json.dumps(payload or {}), content_type="application/json", **extra)

    def create_invite(self, **payload):
        payload.setdefault("unit_id", str(self.unit.id))
        payload.setdefault("email", "guest@test.com")
        return self.post_json("/api/invites/", payload, user=self.admin)

    def test_create_returns_token_once(self):
        response = self.create_invite(max_uses=2)
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["max_uses"], 2)
        self.assertTrue(Invite.objects.filter(token=data["token"]).exists())

        detail = self.client.get(f"/api/invites/{data['id']}", **auth_header(self.admin))
        self.assertEqual(detail.status_code, 200)
        self.assertNotIn("token", detail.json())

    @override_settings(INVITE_DEFAULT_MAX_USES=5)
    def test_omitted_max_uses_uses_configured_default(self):
        self.assertEqual(self.create_invite().json()["max_uses"], 5)
        self.assertIsNone(self.create_invite(max_uses=None).json()["max_uses"])

    def test_create_requires_auth(self):
        response = self.post_json("/api/invites/", {"unit_id": str(self.unit.id), "email": "x@test.com"})
        self.assertEqual(response.status_code, 401)

    def test_create_for_foreign_condo_is_forbidden(self):
        response = self.post_json(
            "/api/invites/", {"unit_id": str(self.unit.id), "email": "x@test.com"}, user=self.outsider
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"], "forbidden")

    def test_create_for_missing_unit_is_not_found(self):
        response = self.post_json(
            "/api/invites/", {"unit_id": str(uuid4()), "email": "x@test.com"}, user=self.outsider
        )
        self.assertEqual(response.status_code, 404)

    def test_create_validation_error(self):
        response = self.create_invite(email=None, phone=None)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "invalid_input")

    def test_validate_is_public_and_uniform(self):
        token = self.create_invite().json()["token"]

        ok = self.client.get(f"/api/invites/validate/{token}")
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json(), {"valid": True, "reason": None, "unit_number": "12A"})

        unknown = self.client.get(f"/api/invites/validate/{'Z' * 43}")
        malformed = self.client.get("/api/invites/validate/abc")
        self.assertEqual(unknown.status_code, 200)
        self.assertEqual(unknown.json(), malformed.json())
        self.assertFalse(unknown.json()["valid"])

    def test_validate_is_rate_limited_per_client(self):
        for _ in range(10):
            self.assertEqual(self.client.get(f"/api/invites/validate/{'Q' * 43}").status_code, 200)

        response = self.client.get(f"/api/invites/validate/{'Q' * 43}")
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["error"], "rate_limited")
        self.assertIn("Retry-After", response)

        # Another client IP still gets through
        other = self.client.get(f"/api/invites/validate/{'Q' * 43}", REMOTE_ADDR="203.0.113.9")
        self.assertEqual(other.status_code, 200)

    def test_forwarded_for_does_not_reset_the_client_limit(self):
        statuses = [
            self.client.get(
                f"/api/invites/validate/{secrets.token_urlsafe(32)}",
                HTTP_X_FORWARDED_FOR=f"10.0.0.{i}",
            ).status_code
            for i in range(12)
        ]
        self.assertEqual(statuses[:10], [200] * 10)
        self.assertEqual(statuses[10:], [429, 429])

    @override_settings(TRUSTED_PROXY_COUNT=1)
    def test_trusted_proxy_hop_identifies_the_client(self):
        for i in range(10):
            response = self.client.get(
                f"/api/invites/validate/{secrets.token_urlsafe(32)}",
                HTTP_X_FORWARDED_FOR=f"10.0.0.{i}, 198.51.100.7",
            )
            self.assertEqual(response.status_code, 200)

        blocked = self.client.get(
            f"/api/invites/validate/{secrets.token_urlsafe(32)}",
            HTTP_X_FORWARDED_FOR="10.0.0.99, 198.51.100.7",
        )
        self.assertEqual(blocked.status_code, 429)

        other = self.client.get(
            f"/api/invites/validate/{secrets.token_urlsafe(32)}",
            HTTP_X_FORWARDED_FOR="198.51.100.8",
        )
        self.assertEqual(other.status_code, 200)

    @override_settings(RATE_LIMIT_ENABLED=False)
    def test_rate_limit_can_be_disabled(self):
        for _ in range(15):
            self.assertEqual(self.client.get("/api/invites/validate/abc").status_code, 200)

    def test_accept_requires_auth(self):
        token = self.create_invite().json()["token"]
        self.assertEqual(self.post_json(f"/api/invites/accept/{token}").status_code, 401)

    def test_accept_then_duplicate_is_conflict(self):
        token = self.create_invite(max_uses=2).json()["token"]
        b = make_user("b")

        first = self.post_json(f"/api/invites/accept/{token}", user=b)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["unit_id"], str(self.unit.id))
        self.assertEqual(first.json()["unit_number"], "12A")

        second = self.post_json(f"/api/invites/accept/{token}", user=b)
        self.assertEqual(second.status_code, 409)
        self.assertEqual(Invite.objects.get(token=token).used_count, 1)

    def test_accept_unknown_token_is_not_found(self):
        response = self.post_json(f"/api/invites/accept/{'N' * 43}", user=make_user())
        self.assertEqual(response.status_code, 404)

    def test_list_stats_and_lifecycle(self):
        invite_id = self.create_invite().json()["id"]

        listed = self.client.get(f"/api/invites/unit/{self.unit.id}", **auth_header(self.admin))
        self.assertEqual(listed.status_code, 200)
        self.assertEqual(len(listed.json()), 1)

        stats = self.client.get(f"/api/invites/unit/{self.unit.id}/stats", **auth_header(self.admin))
        self.assertEqual(stats.json()["active"], 1)

        forbidden = self.client.get(f"/api/invites/unit/{self.unit.id}", **auth_header(self.outsider))
        self.assertEqual(forbidden.status_code, 403)

        deactivated = self.post_json(f"/api/invites/{invite_id}/deactivate", user=self.admin)
        self.assertEqual(deactivated.status_code, 200)
        self.assertFalse(deactivated.json()["is_active"])

        deleted = self.client.delete(f"/api/invites/{invite_id}", **auth_header(self.admin))
        self.assertEqual(deleted.status_code, 204)
        self.assertIsNone(InviteService.get_invite(invite_id))

    def test_missing_invite_is_not_found_before_forbidden(self):
        response = self.client.get(f"/api/invites/{uuid4()}", **auth_header(self.outsider))
        self.assertEqual(response.status_code, 404)

        invite_id = self.create_invite().json()["id"]
        response = self.client.get(f"/api/invites/{invite_id}", **auth_header(self.outsider))
        self.assertEqual(response.status_code, 403)
