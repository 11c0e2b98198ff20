from django.contrib import admin

from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("id", "email", "full_name", "role", "wallet_balance", "commission_rate", "is_active", "created_at")
    list_filter = ("role", "is_active")
    search_fields = ("email", "full_name", "business_name", "phone_number")
    readonly_fields = ("wallet_balance",)
