"""
Identity API endpoints with JWT authentication.

Provides login, logout, token refresh, current user and role grant endpoints.
Accepts the access token from an httpOnly cookie or an
"Authorization: Bearer" header.
"""
from typing import List, Optional
from uuid import UUID
from ninja import Router, Schema
from django.conf import settings
from django.contrib.auth import authenticate
from django.contrib.auth.signals import user_logged_in
from django.http import HttpRequest, HttpResponse
from ninja.errors import HttpError

from apps.core.exceptions import Forbidden
from .models import User
from .dtos import UserDTO, RoleGrantIn, RoleGrantOut
from .services import get_user_dto, grant_role, revoke_role, list_user_roles
from .permissions import get_active_roles, is_superadmin
from .jwt_auth import (
    create_token_pair,
    decode_token,
    get_bearer_token,
    get_user_id_from_token,
    get_access_token_cookie_settings,
    get_refresh_token_cookie_settings,
    create_access_token,
)

router = Router(tags=["Identity"])


# =============================================================================
# Schemas
# =============================================================================

class LoginSchema(Schema):
    username: str
    password: str


class TokenResponse(Schema):
    success: bool
    user: Optional[UserDTO] = None
    message: Optional[str] = None


# =============================================================================
# Helper Functions
# =============================================================================

def get_current_user(request: HttpRequest) -> Optional[User]:
    """
    Extract and validate user from the JWT access token
    (Authorization header first, then cookie).

    Returns User object if valid token, None otherwise.
    """
    access_token = get_bearer_token(request.headers.get('Authorization')) or request.COOKIES.get('access_token')
    if not access_token:
        return None

    user_id = get_user_id_from_token(access_token)
    if not user_id:
        return None

    try:
        return User.objects.get(id=user_id, is_active=True)
    except User.DoesNotExist:
        return None


def require_auth(request: HttpRequest) -> User:
    """
    Require authentication. Raises 401 if not authenticated.
    """
    user = get_current_user(request)
    if not user:
        raise HttpError(401, "Authentication required")
    return user


def is_production() -> bool:
    return not settings.DEBUG


def _json_response(data: TokenResponse) -> HttpResponse:
    return HttpResponse(data.model_dump_json(), content_type='application/json')


# =============================================================================
# Auth Endpoints
# =============================================================================

@router.post("/login", response=TokenResponse, auth=None)
def login_user(request: HttpRequest, payload: LoginSchema):
    """
    Authenticate user and set JWT tokens in httpOnly cookies.

    Returns user data on success, sets access_token and refresh_token cookies.
    """
    user = authenticate(request, username=payload.username, password=payload.password)

    if user is None:
        raise HttpError(401, "Invalid username or password")

    if not user.is_active:
        raise HttpError(401, "Account is disabled")

    access_token, refresh_token = create_token_pair(user.id, get_active_roles(user.id))
    user_logged_in.send(sender=user.__class__, request=request, user=user)

    response = _json_response(TokenResponse(success=True, user=get_user_dto(user.id)))

    prod = is_production()
    response.set_cookie('access_token', access_token, **get_access_token_cookie_settings(prod))
    response.set_cookie('refresh_token', refresh_token, **get_refresh_token_cookie_settings(prod))

    return response


@router.post("/logout", response=TokenResponse, auth=None)
def logout_user(request: HttpRequest):
    """
    Clear authentication cookies.
    """
    response = _json_response(TokenResponse(success=True, message="Logged out"))

    # Clear cookies by setting them to expire immediately
    response.delete_cookie('access_token', path='/')
    response.delete_cookie('refresh_token', path='/')

    return response


@router.post("/refresh", response=TokenResponse, auth=None)
def refresh_token(request: HttpRequest):
    """
    Refresh the access token using the refresh token.

    The new access token carries the roles active right now.
    """
    refresh_token_value = request.COOKIES.get('refresh_token')

    if not refresh_token_value:
        raise HttpError(401, "No refresh token")

    payload = decode_token(refresh_token_value)
    if not payload or payload.get('type') != 'refresh':
        raise HttpError(401, "Invalid refresh token")

    try:
        user = User.objects.get(id=UUID(payload['sub']), is_active=True)
    except (ValueError, KeyError, User.DoesNotExist):
        raise HttpError(401, "Invalid refresh token")

    new_access_token = create_access_token(user.id, get_active_roles(user.id))

    response = _json_response(TokenResponse(success=True, user=get_user_dto(user.id)))
    response.set_cookie('access_token', new_access_token, **get_access_token_cookie_settings(is_production()))

    return response


@router.get("/me", response=UserDTO, auth=None)
def get_me(request: HttpRequest):
    """
    Get current authenticated user's profile with active role grants.
    """
    user = require_auth(request)
    user_dto = get_user_dto(user.id)
    if not user_dto:
        raise HttpError(404, "User not found")
    return user_dto


# =============================================================================
# Role Grants
# =============================================================================

@router.get("/users/{user_id}/roles", response=List[RoleGrantOut], auth=None)
def list_roles(request: HttpRequest, user_id: UUID):
    """
    List active grants of a user. Users see their own; superadmins see anyone's.
    """
    user = require_auth(request)
    if user.id != user_id and not is_superadmin(user.id):
        raise Forbidden("Permission denied")
    return list_user_roles(user_id)


@router.post("/roles", response={201: RoleGrantOut}, auth=None)
def create_role_grant(request: HttpRequest, payload: RoleGrantIn):
    """
    Grant a role at global, company or condo scope.
    """
    user = require_auth(request)
    grant = grant_role(
        payload.user_id,
        payload.role,
        company_id=payload.company_id,
        condo_id=payload.condo_id,
        granted_by=user,
    )
    return 201, grant


@router.delete("/roles/{role_id}", response={204: None}, auth=None)
def delete_role_grant(request: HttpRequest, role_id: UUID):
    """
    Revoke a role grant (soft delete).
    """
    user = require_auth(request)
    revoke_role(role_id, revoked_by=user)
    return 204, None
