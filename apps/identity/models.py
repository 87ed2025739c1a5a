import uuid
from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.contrib.auth.models import AbstractUser


class Role(models.TextChoices):
    SUPERADMIN = 'superadmin', 'Super Administrator'
    COMPANY_ADMIN = 'company_admin', 'Company Administrator (UK Director)'
    CONDO_ADMIN = 'condo_admin', 'Condo Administrator (Complex Admin)'
    ACCOUNTANT = 'accountant', 'Accountant'
    EMPLOYEE = 'employee', 'Employee'
    SECURITY_GUARD = 'security_guard', 'Security Guard'
    RESIDENT = 'resident', 'Resident'


class User(AbstractUser):
    """
    Platform user. Capabilities come from UserRole grants, not from
    a field on the user.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone = models.CharField(max_length=20, blank=True)

    class Meta:
        ordering = ['username']

    def __str__(self):
        return self.email or self.username


class UserRoleQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True, deleted_at__isnull=True)


class UserRole(models.Model):
    """
    A scoped capability grant (the Role Store).

    Exactly one scope level per row:
    - global:  company and condo both empty
    - company: company set
    - condo:   condo set (its company is reachable through condo.company)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='role_grants')
    role = models.CharField(max_length=30, choices=Role.choices)
    company = models.ForeignKey(
        'organizations.Company', on_delete=models.CASCADE,
        null=True, blank=True, related_name='role_grants'
    )
    condo = models.ForeignKey(
        'organizations.Condo', on_delete=models.CASCADE,
        null=True, blank=True, related_name='role_grants'
    )
    is_active = models.BooleanField(default=True)
    granted_by = models.ForeignKey(
        User, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+'
    )
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserRoleQuerySet.as_manager()

    class Meta:
        ordering = ['role', 'created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(company__isnull=True) | Q(condo__isnull=True),
                name='user_roles_single_scope',
            ),
            models.CheckConstraint(
                condition=Q(deleted_at__isnull=True) | Q(is_active=False),
                name='user_roles_deleted_inactive',
            ),
            models.UniqueConstraint(
                fields=['user', 'condo', 'role'],
                condition=Q(deleted_at__isnull=True, condo__isnull=False),
                name='user_roles_user_condo_role_unique',
            ),
            models.UniqueConstraint(
                fields=['user', 'company', 'role'],
                condition=Q(deleted_at__isnull=True, company__isnull=False),
                name='user_roles_user_company_role_unique',
            ),
        ]

    def __str__(self):
        scope = self.condo or self.company or "global"
        return f"{self.user} - {self.role} ({scope})"

    @property
    def scope_level(self) -> str:
        if self.condo_id:
            return 'condo'
        if self.company_id:
            return 'company'
        return 'global'


class InviteRole(models.TextChoices):
    OWNER = 'owner', 'Owner'
    TENANT = 'tenant', 'Tenant'
    FAMILY_MEMBER = 'family_member', 'Family Member'


class Invite(models.Model):
    """
    A redeemable, expiring, usage-bounded token that turns its holder
    into a resident of the target unit.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    unit = models.ForeignKey('registry.Unit', on_delete=models.CASCADE, related_name='invites')

    email = models.EmailField(blank=True, null=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(
        max_length=20,
        choices=InviteRole.choices,
        default=InviteRole.TENANT
    )

    # Security
    token = models.CharField(max_length=128, unique=True)
    expires_at = models.DateTimeField()

    # Usage (max_uses NULL = unlimited)
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='created_invites'
    )
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(email__isnull=False) | Q(phone__isnull=False),
                name='invites_email_or_phone',
            ),
            models.CheckConstraint(
                condition=Q(max_uses__isnull=True) | Q(used_count__lte=F('max_uses')),
                name='invites_used_count_within_max',
            ),
        ]

    def __str__(self):
        return f"Invite to {self.unit} ({self.used_count}/{self.max_uses or '∞'})"

    @property
    def token_prefix(self) -> str:
        return self.token[:8]

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.used_count >= self.max_uses
