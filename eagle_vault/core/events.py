"""
Structured vault event logging.

Provides JSON-formatted event logs with correlation IDs, one per top-level
vault call, on separate channels for vault activity and audit trail.
"""

import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

# Context variables for correlation tracking
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
caller_var: ContextVar[Optional[str]] = ContextVar("caller", default=None)


class LogChannel(Enum):
    """Log channels for different purposes."""

    VAULT = "vault"
    AUDIT = "audit"


class EventType(Enum):
    """Standard event types for structured vault logging."""

    # Share accounting
    DEPOSIT = "vault.deposit"
    DEPOSIT_DUAL = "vault.deposit_dual"
    WITHDRAW = "vault.withdraw"
    WITHDRAW_DUAL = "vault.withdraw_dual"
    CAPITAL_INJECTED = "vault.capital_injected"
    SHARES_TRANSFERRED = "shares.transferred"

    # Strategy orchestration
    STRATEGY_ADDED = "strategy.added"
    STRATEGY_REMOVED = "strategy.removed"
    STRATEGY_WEIGHT_UPDATED = "strategy.weight_updated"
    FUNDS_DEPLOYED = "strategy.funds_deployed"
    DEPLOYMENT_FAILED = "strategy.deployment_failed"

    # Reporting
    REPORT = "report.processed"
    SWAP_EXECUTED = "swap.executed"

    # Lifecycle and audit
    PAUSED = "lifecycle.paused"
    UNPAUSED = "lifecycle.unpaused"
    SHUTDOWN = "lifecycle.shutdown"
    EMERGENCY_WITHDRAW = "lifecycle.emergency_withdraw"
    ROLE_CHANGED = "audit.role_changed"
    CONFIG_CHANGED = "audit.config_changed"
    WHITELIST_CHANGED = "audit.whitelist_changed"
    CALL_REVERTED = "audit.call_reverted"


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


@dataclass
class VaultEvent:
    """One structured vault event, as buffered and as written to disk."""

    timestamp: str
    level: str
    channel: str
    event_type: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=_json_default)


class JSONLinesFormatter(logging.Formatter):
    """Renders the VaultEvent attached to a log record as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        event = getattr(record, "vault_event", None)
        if event is None:
            return json.dumps({"message": record.getMessage(), "level": record.levelname})
        return event.to_json()


class VaultEventLogger:
    """
    Structured event logger for vault activity.

    Writes one JSON line per event to ``<log_dir>/<channel>.jsonl``. When no
    log directory is given, events are kept only in the in-memory buffer
    (useful for tests and dry runs).

    Example:
        >>> events = VaultEventLogger("vault-main", log_dir=Path("logs"))
        >>> with events.correlation(caller="0xabc"):
        ...     events.emit(EventType.DEPOSIT, "Deposit", assets=Decimal("10"))
    """

    def __init__(
        self,
        name: str,
        log_dir: Optional[Union[str, Path]] = None,
        level: int = logging.INFO,
        max_buffer: int = 1000,
    ):
        self._name = name
        self._loggers: Dict[LogChannel, logging.Logger] = {}
        self._buffer: list[VaultEvent] = []
        self._max_buffer = max_buffer

        for channel in LogChannel:
            channel_logger = logging.getLogger(f"structured.{channel.value}.{name}")
            channel_logger.setLevel(level)
            channel_logger.propagate = False
            if log_dir is not None and not channel_logger.handlers:
                directory = Path(log_dir)
                directory.mkdir(parents=True, exist_ok=True)
                handler = RotatingFileHandler(
                    directory / f"{channel.value}.jsonl",
                    maxBytes=50 * 1024 * 1024,  # 50 MB
                    backupCount=10,
                    encoding="utf-8",
                )
                handler.setFormatter(JSONLinesFormatter())
                channel_logger.addHandler(handler)
            self._loggers[channel] = channel_logger

    @property
    def records(self) -> list[VaultEvent]:
        """Buffered event records (oldest first)."""
        return list(self._buffer)

    def events_of(self, event_type: EventType) -> list[VaultEvent]:
        """Buffered records of a given event type."""
        return [r for r in self._buffer if r.event_type == event_type.value]

    @contextmanager
    def correlation(self, caller: Optional[str] = None) -> Iterator[str]:
        """
        Bind a fresh correlation id (and caller) for the duration of a call.

        Nested use keeps the outer correlation id.
        """
        existing = correlation_id_var.get()
        cid = existing or str(uuid.uuid4())
        cid_token = correlation_id_var.set(cid)
        caller_token = caller_var.set(caller or caller_var.get())
        try:
            yield cid
        finally:
            correlation_id_var.reset(cid_token)
            caller_var.reset(caller_token)

    def emit(
        self,
        event_type: EventType,
        message: str,
        level: int = logging.INFO,
        **data: Any,
    ) -> None:
        """Record a vault-channel event."""
        self._log(LogChannel.VAULT, level, event_type, message, data)

    def audit(
        self,
        event_type: EventType,
        message: str,
        level: int = logging.INFO,
        **data: Any,
    ) -> None:
        """Record an audit-channel event (roles, configuration, lifecycle)."""
        self._log(LogChannel.AUDIT, level, event_type, message, data)

    def _log(
        self,
        channel: LogChannel,
        level: int,
        event_type: EventType,
        message: str,
        data: Dict[str, Any],
    ) -> None:
        context = {
            "correlation_id": correlation_id_var.get(),
            "caller": caller_var.get(),
        }
        event = VaultEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=logging.getLevelName(level),
            channel=channel.value,
            event_type=event_type.value,
            message=message,
            context={k: v for k, v in context.items() if v is not None},
            data=data,
        )
        self._buffer.append(event)
        if len(self._buffer) > self._max_buffer:
            del self._buffer[: -self._max_buffer]

        self._loggers[channel].log(level, message, extra={"vault_event": event})
