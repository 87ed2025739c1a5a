"""
Abuse-guard glue for the public invite endpoints.

Validation is limited per client IP and, globally, per token prefix so
that enumeration spread across many IPs still trips the guard.
Acceptance is limited per authenticated user.
"""
from django.conf import settings
from django.http import HttpRequest

from apps.core.rate_limit import enforce
from .invite_service import is_well_formed_token


def client_identity(request: HttpRequest) -> str:
    """
    Address of the caller as seen by the outermost trusted proxy.

    X-Forwarded-For is client-controlled except for the hops our own
    proxies append, so only the entry TRUSTED_PROXY_COUNT places from the
    right is used. With no trusted proxies the socket address is used.
    """
    remote_addr = request.META.get('REMOTE_ADDR') or 'unknown'
    proxies = getattr(settings, 'TRUSTED_PROXY_COUNT', 0)
    if proxies <= 0:
        return remote_addr

    hops = [h.strip() for h in request.META.get('HTTP_X_FORWARDED_FOR', '').split(',') if h.strip()]
    if len(hops) < proxies:
        return remote_addr
    return hops[-proxies]


def _enforce_policy(identity_key: str, policy: dict):
    return enforce(
        identity_key,
        limit_points=policy['points'],
        window_seconds=policy['window'],
        block_seconds=policy.get('block'),
    )


def guard_invite_validation(request: HttpRequest, token: str):
    _enforce_policy(f"invite-validate:{client_identity(request)}", settings.INVITE_VALIDATE_RATE_LIMIT)
    if is_well_formed_token(token):
        _enforce_policy(f"invite-token-prefix:{token[:8]}", settings.INVITE_TOKEN_PREFIX_RATE_LIMIT)


def guard_invite_acceptance(request: HttpRequest, user_id):
    _enforce_policy(f"invite-accept:{user_id}", settings.INVITE_ACCEPT_RATE_LIMIT)
