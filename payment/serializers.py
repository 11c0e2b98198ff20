from decimal import Decimal

from rest_framework import serializers

from .models import PayoutRequest, WalletTransaction


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = ["id", "type", "amount", "status", "reference_id", "payment_ref", "meta", "created_at", "updated_at"]


class PayoutRequestSerializer(serializers.ModelSerializer):
    seller_email = serializers.EmailField(source="seller.email", read_only=True)

    class Meta:
        model = PayoutRequest
        fields = [
            "id",
            "seller",
            "seller_email",
            "amount",
            "method",
            "phone",
            "status",
            "processed_by",
            "processed_at",
            "note",
            "created_at",
            "updated_at",
        ]


class PayoutCreateSerializer(serializers.Serializer):
    # Bounds are checked by PayoutService so the message matches the wallet state.
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=PayoutRequest.Method.choices, default=PayoutRequest.Method.WAVE)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)


class PayoutRejectSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default="")


class WalletRechargeSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("1"))
    phone_number = serializers.CharField(max_length=30)


class GatewayActionSerializer(serializers.Serializer):
    ACTIONS = ("initiate", "verify", "callback")

    action = serializers.CharField()
    amount = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    phoneNumber = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    orderId = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    transactionId = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    reference = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    status = serializers.CharField(required=False, allow_blank=True, allow_null=True)
