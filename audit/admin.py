from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("id", "actor", "action", "entity", "entity_id", "created_at")
    search_fields = ("entity_id", "actor__email")
    list_filter = ("action", "entity")
