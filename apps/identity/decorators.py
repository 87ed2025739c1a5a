from functools import wraps
from typing import Callable, Iterable, Optional

from django.http import HttpRequest

from apps.core.exceptions import NotFound
from .api import require_auth
from .permissions import Scope, ensure_access, resolve_scope_chain


def _resolve_scope(kind: str, value) -> Scope:
    """Map a path parameter to the Scope it lives in."""
    if kind == 'invite':
        from .invite_service import InviteService
        preview = InviteService.get_invite_preview(value)
        if preview is None:
            raise NotFound("Invite")
        return Scope.unit(preview['unit_id'])

    if kind == 'resident':
        from apps.registry.models import Resident
        unit_id = Resident.objects.alive().filter(id=value).values_list('unit_id', flat=True).first()
        if unit_id is None:
            raise NotFound("Resident")
        return Scope.unit(unit_id)

    return {
        'company': Scope.company,
        'condo': Scope.condo,
        'unit': Scope.unit,
    }[kind](value)


def scoped_access(kind: str, param: str, required_roles: Optional[Iterable] = None):
    """
    Decorator to enforce scoped access on a Django Ninja endpoint.

    The target is resolved first, so a missing target is a 404 for every
    caller; only then is the caller's role checked (403).

    Usage:
        @router.get("/units/{unit_id}/invites")
        @scoped_access('unit', 'unit_id', ADMIN_ROLES)
        def list_invites(request, unit_id: UUID):
            ...
    """
    def decorator(view_func: Callable):
        @wraps(view_func)
        def wrapper(request: HttpRequest, *args, **kwargs):
            user = require_auth(request)

            scope = _resolve_scope(kind, kwargs[param])
            resolve_scope_chain(scope)
            ensure_access(user.id, scope, required_roles)

            request.user = user
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
