from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Literal, Optional, Sequence

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.created",
    "reservation.modified",
    "reservation.cancelled",
    "reservation.status_changed",
    "reservation.reassigned",
    "tables.updated",
    "tables.initialized",
]
AuditInitiator = Literal["user", "admin"]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    actor_id: Optional[int],
    reservation_id: Optional[int] = None,
    reservation_number: Optional[str] = None,
    user_id: Optional[int] = None,
    booking_date: Optional[date] = None,
    slot: Optional[int] = None,
    table_numbers: Optional[Sequence[int]] = None,
    guests: Optional[int] = None,
    status_from: Any = None,
    status_to: Any = None,
    version: Optional[int] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit one structured JSON audit line. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "actor_id": actor_id,
        "request_id": get_request_id(),
        "reservation_id": reservation_id,
        "reservation_number": reservation_number,
        "user_id": user_id,
        "date": booking_date.isoformat() if booking_date is not None else None,
        "slot": slot,
        "table_numbers": list(table_numbers) if table_numbers is not None else None,
        "guests": guests,
        "status_from": _enum_to_str(status_from),
        "status_to": _enum_to_str(status_to),
        "version": version,
    }
    if extra:
        payload.update(extra)

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True, default=str))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
