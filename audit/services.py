import json
import logging
from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:

    @staticmethod
    def _jsonable(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        # Decimals and UUIDs in details must survive the JSONField round-trip.
        return json.loads(json.dumps(details or {}, cls=DjangoJSONEncoder))

    @classmethod
    def record(
        cls,
        *,
        actor,
        action: str,
        entity: str,
        entity_id: Any = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Write an audit entry. Money flows must not fail on audit errors."""
        try:
            with transaction.atomic():
                return AuditLog.objects.create(
                    actor=actor if getattr(actor, "pk", None) else None,
                    action=action,
                    entity=entity,
                    entity_id=str(entity_id or ""),
                    details=cls._jsonable(details),
                )
        except Exception:
            logger.exception("Failed to write audit log action=%s entity=%s:%s", action, entity, entity_id)
            return None
