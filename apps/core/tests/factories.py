"""Shared builders for tests across apps."""
from uuid import uuid4

from django.contrib.auth import get_user_model

from apps.identity.jwt_auth import create_access_token
from apps.identity.models import Role, UserRole
from apps.organizations.models import Company, Condo
from apps.registry.models import Unit

User = get_user_model()


def make_user(username=None, **extra):
    username = username or f"user_{uuid4().hex[:8]}"
    return User.objects.create_user(
        username=username,
        email=f"{username}@test.com",
        password="testpass123",
        **extra,
    )


def make_company(name=None):
    return Company.objects.create(name=name or f"Company {uuid4().hex[:6]}")


def make_condo(company, name=None):
    return Condo.objects.create(company=company, name=name or f"Condo {uuid4().hex[:6]}")


def make_unit(condo, number=None):
    return Unit.objects.create(condo=condo, number=number or uuid4().hex[:6])


def grant(user, role, company=None, condo=None):
    return UserRole.objects.create(user=user, role=role, company=company, condo=condo)


def make_superadmin(username=None):
    user = make_user(username)
    grant(user, Role.SUPERADMIN)
    return user


def auth_header(user) -> dict:
    """Extra kwargs for the test Client carrying a Bearer access token."""
    return {"HTTP_AUTHORIZATION": f"Bearer {create_access_token(user.id)}"}
