import json
from datetime import date
from typing import Any, List

import pytest
from tablebook.models import ReservationStatus
from tablebook.utils import audit_log
from tablebook.utils.request_id import set_request_id


def test_emit_audit_log_outputs_json(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    set_request_id("req-123")
    audit_log.emit_audit_log(
        action="reservation.created",
        initiator="user",
        actor_id=4,
        reservation_id=1,
        reservation_number="20300501-1900-3",
        user_id=4,
        booking_date=date(2030, 5, 1),
        slot=9,
        table_numbers=(3,),
        guests=4,
        status_from=None,
        status_to=ReservationStatus.CONFIRMED,
        version=1,
    )
    set_request_id(None)
    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "reservation.created"
    assert payload["initiator"] == "user"
    assert payload["request_id"] == "req-123"
    assert payload["status_to"] == "confirmed"
    assert payload["date"] == "2030-05-01"
    assert payload["table_numbers"] == [3]
    assert "status_from" not in payload
    assert "timestamp" in payload


def test_emit_audit_log_merges_extra(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    audit_log.emit_audit_log(
        action="tables.initialized",
        initiator="admin",
        actor_id=1,
        extra={"created": 22},
    )
    payload = json.loads(messages[0])
    assert payload["created"] == 22
    assert "reservation_id" not in payload


def test_emit_audit_log_raises_on_logger_failure(monkeypatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="reservation.cancelled",
            initiator="user",
            actor_id=4,
            reservation_id=1,
            user_id=4,
            status_from=ReservationStatus.CONFIRMED,
            status_to=ReservationStatus.CANCELLED,
            version=2,
        )
