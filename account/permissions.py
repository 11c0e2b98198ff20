from rest_framework.permissions import BasePermission


class IsPlatformAdmin(BasePermission):
    message = "Platform admin role required"

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "is_platform_admin", False))


class IsSeller(BasePermission):
    message = "Seller role required"

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "is_seller", False))


class IsSellerOrPlatformAdmin(BasePermission):
    message = "Seller or platform admin role required"

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        return getattr(user, "is_seller", False) or getattr(user, "is_platform_admin", False)
