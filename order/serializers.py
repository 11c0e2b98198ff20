from decimal import Decimal

from rest_framework import serializers

from .models import Order, OrderItem


class CartLineSerializer(serializers.Serializer):
    product_id = serializers.CharField(max_length=100)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    seller_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CheckoutSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=Order.PaymentMethod.choices)
    items = CartLineSerializer(many=True, allow_empty=False)
    phone_number = serializers.CharField(max_length=30, required=False, allow_blank=True)
    payment_ref = serializers.CharField(max_length=150, required=False, allow_blank=True)

    def validate(self, attrs):
        method = attrs["payment_method"]
        if method != Order.PaymentMethod.WALLET and not attrs.get("phone_number"):
            raise serializers.ValidationError({"phone_number": "phone_number is required for mobile money"})
        return attrs


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "product_id", "product_name", "seller", "price", "quantity", "total"]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "buyer",
            "seller",
            "status",
            "payment_method",
            "payment_ref",
            "total_amount",
            "commission_amount",
            "seller_amount",
            "payout_status",
            "escrow_amount",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)
