import logging

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.generics import CreateAPIView, RetrieveAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from audit.models import AuditLog
from audit.services import AuditService
from .commission import resolve_commission_rate, set_commission_rate
from .permissions import IsPlatformAdmin
from .serializers import CommissionRateSerializer, UserSerializer, WalletProfileSerializer

User = get_user_model()
logger = logging.getLogger(__name__)


class RegisterUserView(CreateAPIView):
    queryset = User.objects.all()
    permission_classes = [permissions.AllowAny]
    serializer_class = UserSerializer


class MeView(RetrieveAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = WalletProfileSerializer

    def get_object(self):
        return self.request.user


class SellerCommissionRateView(APIView):
    permission_classes = [IsPlatformAdmin]

    def get(self, request, pk):
        seller = get_object_or_404(User, pk=pk)
        return Response(
            {
                "seller_id": str(seller.id),
                "role": seller.role,
                "commission_rate": seller.commission_rate,
                "effective_commission_rate": resolve_commission_rate(seller),
            }
        )

    def patch(self, request, pk):
        seller = get_object_or_404(User, pk=pk)
        if not seller.is_seller:
            return Response({"detail": "Commission rates apply to sellers only"}, status=status.HTTP_400_BAD_REQUEST)

        serializer = CommissionRateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        previous = seller.commission_rate
        new_rate = set_commission_rate(seller, serializer.validated_data["commission_rate"])
        logger.info("Commission rate for seller=%s changed from %s to %s", seller.id, previous, new_rate)
        AuditService.record(
            actor=request.user,
            action=AuditLog.Action.COMMISSION_RATE_UPDATE,
            entity="profiles",
            entity_id=seller.id,
            details={"previous": previous, "commission_rate": new_rate},
        )
        return Response(
            {
                "seller_id": str(seller.id),
                "commission_rate": new_rate,
                "effective_commission_rate": resolve_commission_rate(seller),
            },
            status=status.HTTP_200_OK,
        )
