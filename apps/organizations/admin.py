from django.contrib import admin
from .models import Company, Condo


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ['name', 'inn', 'is_active', 'deleted_at', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'legal_name', 'inn']


@admin.register(Condo)
class CondoAdmin(admin.ModelAdmin):
    list_display = ['name', 'company', 'is_active', 'deleted_at', 'created_at']
    list_filter = ['is_active', 'company']
    search_fields = ['name', 'address']
