from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import Invite, User, UserRole


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'phone', 'is_active', 'date_joined']
    fieldsets = BaseUserAdmin.fieldsets + (('Contact', {'fields': ('phone',)}),)


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'company', 'condo', 'is_active', 'deleted_at']
    list_filter = ['role', 'is_active']
    search_fields = ['user__username', 'user__email']
    raw_id_fields = ['user', 'granted_by']


@admin.register(Invite)
class InviteAdmin(admin.ModelAdmin):
    list_display = ['unit', 'email', 'phone', 'role', 'used_count', 'max_uses', 'is_active', 'expires_at']
    list_filter = ['role', 'is_active']
    search_fields = ['email', 'phone', 'unit__number']
    exclude = ['token']
    raw_id_fields = ['unit', 'created_by']
