"""
Audit trail for booking-side writes.

Events are written in the caller's transaction, so a rolled-back
booking leaves no audit row behind.  Details hold identifiers only;
personal data is dropped before the row is written.
"""
from typing import Any, Dict, Optional

from clinic.models import AuditEvent, User

PERSONAL_KEYS = frozenset({'firstName', 'lastName', 'email', 'phone', 'dateOfBirth', 'password'})


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None,
               object_id: Optional[int] = None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    detail = {k: v for k, v in (detail or {}).items() if k not in PERSONAL_KEYS}
    return AuditEvent.objects.create(
        # anonymous or unsaved callers are recorded as the system
        user=user if getattr(user, 'pk', None) else None,
        action=action,
        object_type=object_type,
        object_id=object_id,
        detail=detail,
    )
