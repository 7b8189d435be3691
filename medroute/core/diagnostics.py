"""
Structured diagnostics for optimization runs.

The engine reports its significant decisions (assignments, conflicts,
fallback tiers) through a ``Diagnostics`` sink. Every event is logged; callers
may additionally subscribe callbacks or ask the sink to keep the events so
they can be returned to an operator.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Field, SQLModel

logger = logging.getLogger(__name__)


class DiagnosticEvent(SQLModel):
    event: str
    message: str
    level: str = "info"
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


DiagnosticsCallback = Callable[[DiagnosticEvent], None]


class Diagnostics:
    def __init__(
        self,
        callbacks: Optional[List[DiagnosticsCallback]] = None,
        record: bool = False,
    ):
        self.callbacks: List[DiagnosticsCallback] = list(callbacks or [])
        self.record = record
        self.events: List[DiagnosticEvent] = []

    def subscribe(self, callback: DiagnosticsCallback) -> None:
        self.callbacks.append(callback)

    def emit(self, event: str, message: str, level: str = "info", **data: Any) -> DiagnosticEvent:
        record = DiagnosticEvent(event=event, message=message, level=level, data=data)
        logger.log(logging.getLevelName(level.upper()), f"[{event}] {message}")
        if self.record:
            self.events.append(record)
        for callback in self.callbacks:
            callback(record)
        return record

    def info(self, event: str, message: str, **data: Any) -> DiagnosticEvent:
        return self.emit(event, message, "info", **data)

    def warning(self, event: str, message: str, **data: Any) -> DiagnosticEvent:
        return self.emit(event, message, "warning", **data)
