import uuid
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.organizations.models import SoftDeleteQuerySet


class Unit(models.Model):
    """
    An apartment / commercial space within a Condo.
    Every Unit belongs to exactly one Condo.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    condo = models.ForeignKey('organizations.Condo', on_delete=models.PROTECT, related_name='units')

    number = models.CharField(max_length=50)
    floor = models.IntegerField(null=True, blank=True)
    area = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True, help_text="Total area, m²")

    is_active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        ordering = ['number']
        constraints = [
            models.UniqueConstraint(
                fields=['condo', 'number'],
                condition=Q(deleted_at__isnull=True),
                name='units_condo_number_unique',
            ),
        ]

    def __str__(self):
        return f"{self.condo} - {self.number}"

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.is_active = False
        self.save(update_fields=['deleted_at', 'is_active', 'updated_at'])


class ResidentQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)

    def active(self):
        return self.filter(is_active=True, deleted_at__isnull=True)


class Resident(models.Model):
    """
    A user's occupancy of a Unit, optionally as its owner.

    Moving out keeps the row for history (is_active=False, moved_out_at set).
    The partial unique constraints below back up the row locks taken by
    resident_service.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='residencies')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='residents')

    is_owner = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    moved_in_at = models.DateTimeField(null=True, blank=True)
    moved_out_at = models.DateTimeField(null=True, blank=True)

    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ResidentQuerySet.as_manager()

    class Meta:
        ordering = ['-is_owner', 'created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'unit'],
                condition=Q(is_active=True, deleted_at__isnull=True),
                name='residents_user_unit_active_unique',
            ),
            models.UniqueConstraint(
                fields=['unit'],
                condition=Q(is_owner=True, is_active=True, deleted_at__isnull=True),
                name='residents_unit_active_owner_unique',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'is_active'], name='residents_user_active_idx'),
        ]

    def __str__(self):
        return f"{self.user} @ {self.unit}{' (owner)' if self.is_owner else ''}"
