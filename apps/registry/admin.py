from django.contrib import admin
from .models import Resident, Unit


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ['number', 'condo', 'floor', 'is_active', 'deleted_at']
    list_filter = ['is_active', 'condo']
    search_fields = ['number', 'condo__name']


@admin.register(Resident)
class ResidentAdmin(admin.ModelAdmin):
    list_display = ['user', 'unit', 'is_owner', 'is_active', 'moved_in_at', 'moved_out_at']
    list_filter = ['is_owner', 'is_active']
    search_fields = ['user__username', 'user__email', 'unit__number']
    raw_id_fields = ['user', 'unit']
