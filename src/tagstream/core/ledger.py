"""Status ledger shared between the execution pipeline and whatever observes it."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from tagstream.models import OperationStatus

logger = logging.getLogger(__name__)

IDLE_STATUS = "Finished executing instructions; waiting for the next request."

DetectionState = Literal["active", "dismissed"]
Listener = Callable[[Any], None]


class LedgerEvent(str, Enum):
    STATUS = "status"
    OPERATION = "operation"
    EXECUTION_ERROR = "execution_error"
    DETECTION = "detection"
    NOTICE = "notice"


@dataclass(frozen=True)
class Detection:
    id: str
    log: str
    timestamp: datetime
    status: DetectionState = "active"


class StatusLedger:
    def __init__(self) -> None:
        self.operations: dict[str, OperationStatus] = {}
        self.status_line = ""
        self.execution_error: str | None = None
        self.detections: list[Detection] = []
        self.notices: list[str] = []
        self.is_processing = False
        self._listeners: dict[LedgerEvent, list[Listener]] = {event: [] for event in LedgerEvent}

    # -- observers ----------------------------------------------------------

    def subscribe(self, event: LedgerEvent, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event``; returns a function that unregisters it."""
        self._listeners[event].append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return _unsubscribe

    def _emit(self, event: LedgerEvent, payload: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception:
                logger.exception("Error in %s listener", event.value)

    # -- operations ---------------------------------------------------------

    def get(self, node_id: str) -> OperationStatus:
        return self.operations.get(node_id, OperationStatus.PENDING)

    def mark(self, node_id: str, status: OperationStatus) -> None:
        self.operations[node_id] = status
        self._emit(LedgerEvent.OPERATION, (node_id, status))

    def set_status(self, line: str) -> None:
        self.status_line = line
        self._emit(LedgerEvent.STATUS, line)

    # -- execution error signal ---------------------------------------------

    def raise_execution_error(self, error: str) -> None:
        self.execution_error = error
        self._emit(LedgerEvent.EXECUTION_ERROR, error)

    def take_execution_error(self) -> str | None:
        """Consume the pending execution error, if any."""
        error, self.execution_error = self.execution_error, None
        return error

    # -- detections ---------------------------------------------------------

    def add_detection(self, log: str) -> Detection:
        for index, existing in enumerate(self.detections):
            if existing.log == log:
                detection = replace(existing, status="active")
                self.detections[index] = detection
                break
        else:
            detection = Detection(id=f"det-{uuid.uuid4().hex[:12]}", log=log, timestamp=datetime.now(timezone.utc))
            self.detections.append(detection)
        self._emit(LedgerEvent.DETECTION, detection)
        return detection

    def dismiss_detection(self, detection_id: str) -> bool:
        for index, existing in enumerate(self.detections):
            if existing.id == detection_id:
                self.detections[index] = replace(existing, status="dismissed")
                return True
        return False

    def dismiss_active_detections(self) -> None:
        self.detections = [replace(d, status="dismissed") if d.status == "active" else d for d in self.detections]

    def clear_detections(self) -> None:
        self.detections = []

    def active_detections(self) -> list[Detection]:
        return [d for d in self.detections if d.status == "active"]

    # -- notices ------------------------------------------------------------

    def notify(self, message: str) -> None:
        self.notices.append(message)
        self._emit(LedgerEvent.NOTICE, message)
