"""
URL configuration for the condo residency project.
"""
from django.contrib import admin
from django.urls import path
from ninja import NinjaAPI

from apps.core.exceptions import DomainError, RateLimited

api = NinjaAPI(
    title="Condo Residency API",
    version="1.0.0",
    description="Companies, condos, units, residents and invites",
    docs_url="/docs",
)


@api.exception_handler(DomainError)
def domain_error_handler(request, exc: DomainError):
    response = api.create_response(
        request,
        {"error": exc.code, "message": exc.message, **exc.details},
        status=exc.status_code,
    )
    if isinstance(exc, RateLimited):
        response['Retry-After'] = str(exc.retry_after)
    return response


from apps.identity.api import router as identity_router
from apps.identity.invite_api import router as invites_router
from apps.registry.api import router as registry_router
from apps.organizations.api import router as organizations_router
from apps.governance.api import router as governance_router

api.add_router("/identity/", identity_router)
api.add_router("/invites/", invites_router)
api.add_router("/registry/", registry_router)
api.add_router("/companies/", organizations_router)
api.add_router("/governance/", governance_router)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', api.urls),
]
