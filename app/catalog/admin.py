"""Django admin for resources."""

from django.contrib import admin

from catalog.models import Resource


@admin.register(Resource)
class ResourceAdmin(admin.ModelAdmin):
    list_display = ["id", "title", "price", "provider_type", "owner", "is_active"]
    list_filter = ["provider_type", "is_active"]
    search_fields = ["title"]
    raw_id_fields = ["owner"]
    readonly_fields = ["id", "created_at", "updated_at"]
