from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination

from account.permissions import IsPlatformAdmin
from .models import AuditLog
from .serializers import AuditLogSerializer


class AuditLogPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = "page_size"
    max_page_size = 100


class AuditLogListView(ListAPIView):
    permission_classes = [IsPlatformAdmin]
    serializer_class = AuditLogSerializer
    pagination_class = AuditLogPagination

    def get_queryset(self):
        qs = AuditLog.objects.select_related("actor").all()
        params = self.request.query_params
        action = params.get("action")
        if action and action != "ALL":
            qs = qs.filter(action=action)
        actor_role = params.get("actor_role")
        if actor_role and actor_role != "ALL":
            qs = qs.filter(actor__role=actor_role)
        entity = params.get("entity")
        if entity:
            qs = qs.filter(entity=entity)
        entity_id = params.get("entity_id")
        if entity_id:
            qs = qs.filter(entity_id=entity_id)
        return qs
