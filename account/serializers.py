from decimal import Decimal

from rest_framework.serializers import ModelSerializer
from django.contrib.auth import get_user_model
from rest_framework import serializers

from .commission import resolve_commission_rate
User = get_user_model()

SELF_SERVICE_ROLES = [User.Role.BUYER, User.Role.STORE_ADMIN, User.Role.PARTNER_ADMIN]


class UserSerializer(ModelSerializer):
    role = serializers.ChoiceField(choices=SELF_SERVICE_ROLES, default=User.Role.BUYER)

    class Meta:
        model = User
        fields = ['id', 'full_name', 'email', 'phone_number', 'business_name', 'location', 'role', 'created_at', 'updated_at', 'password']
        extra_kwargs = {
            'password': {'write_only': True},}
        read_only_fields = ('id', 'created_at', 'updated_at')
    def create(self, validated_data):
        password = validated_data.pop('password', None)
        user = super().create(validated_data)
        if password:
            user.set_password(password)
            user.save(update_fields=["password"])
        return user


class WalletProfileSerializer(ModelSerializer):
    effective_commission_rate = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'full_name', 'email', 'role', 'wallet_balance', 'commission_rate', 'effective_commission_rate']
        read_only_fields = fields

    def get_effective_commission_rate(self, obj):
        if not obj.is_seller:
            return None
        return str(resolve_commission_rate(obj))


class CommissionRateSerializer(serializers.Serializer):
    commission_rate = serializers.DecimalField(
        max_digits=5,
        decimal_places=4,
        min_value=Decimal("0"),
        max_value=Decimal("1"),
        allow_null=True,
    )
