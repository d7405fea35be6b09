"""
Structured telemetry for the rate tracker and request dispatcher.

This module provides structured logging capabilities for understanding:
- API utilization and the quota the server reports
- Throttling events and how long requests were held back
- Server reported errors and transport failures
- Responses with missing or malformed rate limit headers

Events never carry credentials.
"""
import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class TelemetryLevel(Enum):
    """Telemetry verbosity levels."""
    INFO = "info"
    DEBUG = "debug"


class TelemetryDecision(Enum):
    """What happened to a request."""
    ALLOW = "allow"                       # Sent without waiting
    THROTTLE = "throttle"                 # Held back until the bucket deadline
    OBSERVE = "observe"                   # Quota observed, deadline updated
    MALFORMED_QUOTA = "malformed_quota"   # Rate limit headers unusable
    API_ERROR = "api_error"               # Server answered non-success
    TRANSPORT_ERROR = "transport_error"   # Server never answered
    DECODE_ERROR = "decode_error"         # Body could not be decoded


# Decisions that are worth an INFO line even when not debugging
_NOTABLE_DECISIONS = {
    TelemetryDecision.THROTTLE.value,
    TelemetryDecision.MALFORMED_QUOTA.value,
    TelemetryDecision.API_ERROR.value,
    TelemetryDecision.TRANSPORT_ERROR.value,
    TelemetryDecision.DECODE_ERROR.value,
}


@dataclass
class TelemetryEvent:
    """
    A single telemetry event.

    Attributes:
        timestamp: ISO 8601 timestamp of event
        method: HTTP method
        endpoint: URL of the request, without query
        decision: What happened (allow, throttle, observe, ...)
        status: HTTP status code (None if the server was not reached)
        elapsed_ms: Request duration in milliseconds
        sleep_s: Time held back by the rate tracker
        headers_seen: Rate limit headers from the response
        bucket_key: Rate limit bucket identifier
        quota_limit: Limit reported by the server
        quota_remaining: Remaining count reported by the server
        error_code: API error code, if any
    """
    timestamp: str
    method: str
    endpoint: str
    decision: str
    status: Optional[int] = None
    elapsed_ms: float = 0.0
    sleep_s: float = 0.0
    headers_seen: Dict[str, str] = field(default_factory=dict)
    bucket_key: str = ""
    quota_limit: Optional[int] = None
    quota_remaining: Optional[int] = None
    error_code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for logging."""
        return {k: v for k, v in asdict(self).items() if v is not None or k == "status"}

    def to_json(self) -> str:
        """Convert event to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def to_keyvalue(self) -> str:
        """Convert event to key=value format."""
        pairs = []
        for key, value in self.to_dict().items():
            if isinstance(value, dict):
                for subkey, subval in value.items():
                    pairs.append(f"{key}.{subkey}={subval}")
            else:
                pairs.append(f"{key}={value}")
        return " ".join(pairs)


@dataclass
class TelemetryStats:
    """
    Aggregated statistics for telemetry analysis.

    Useful for tests and runtime monitoring.
    """
    total_events: int = 0
    total_sleeps: int = 0
    total_sleep_time: float = 0.0
    total_elapsed_time: float = 0.0
    decisions_by_type: Dict[str, int] = field(default_factory=dict)
    status_codes: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        avg_latency = (
            self.total_elapsed_time / self.total_events
            if self.total_events > 0
            else 0.0
        )

        return {
            "total_events": self.total_events,
            "total_sleeps": self.total_sleeps,
            "total_sleep_time": self.total_sleep_time,
            "avg_latency_ms": round(avg_latency, 2),
            "decisions_by_type": self.decisions_by_type,
            "status_codes": self.status_codes,
        }


class TelemetryRecorder:
    """
    Records and emits structured telemetry.

    Features:
    - Structured logging in JSON or key=value format
    - Configurable verbosity (info/debug)
    - Optional in-memory statistics collection
    - Thread-safe operation
    """

    def __init__(
        self,
        level: TelemetryLevel = TelemetryLevel.INFO,
        format_json: bool = True,
        collect_stats: bool = False
    ):
        """
        Initialize telemetry recorder.

        Args:
            level: Logging verbosity level
            format_json: If True, log as JSON; otherwise use key=value
            collect_stats: If True, collect in-memory statistics
        """
        self.level = level
        self.format_json = format_json
        self.collect_stats = collect_stats

        self._stats = TelemetryStats()
        self._stats_lock = threading.Lock()

        # Event history (for testing)
        self._events: List[TelemetryEvent] = []
        self._events_lock = threading.Lock()

    def record(self, event: TelemetryEvent) -> None:
        """
        Record a telemetry event.

        Args:
            event: Event to record
        """
        if self.format_json:
            log_message = event.to_json()
        else:
            log_message = event.to_keyvalue()

        if self.level == TelemetryLevel.DEBUG:
            logger.debug(log_message)
        elif event.decision in _NOTABLE_DECISIONS or (event.status and event.status >= 400):
            logger.info(log_message)
        else:
            logger.debug(log_message)

        if self.collect_stats:
            with self._stats_lock:
                self._stats.total_events += 1
                self._stats.total_elapsed_time += event.elapsed_ms

                if event.sleep_s > 0:
                    self._stats.total_sleeps += 1
                    self._stats.total_sleep_time += event.sleep_s

                decision_key = event.decision
                self._stats.decisions_by_type[decision_key] = (
                    self._stats.decisions_by_type.get(decision_key, 0) + 1
                )

                if event.status:
                    self._stats.status_codes[event.status] = (
                        self._stats.status_codes.get(event.status, 0) + 1
                    )

        with self._events_lock:
            self._events.append(event)

    def get_stats(self) -> TelemetryStats:
        """Get current statistics snapshot."""
        with self._stats_lock:
            return TelemetryStats(
                total_events=self._stats.total_events,
                total_sleeps=self._stats.total_sleeps,
                total_sleep_time=self._stats.total_sleep_time,
                total_elapsed_time=self._stats.total_elapsed_time,
                decisions_by_type=self._stats.decisions_by_type.copy(),
                status_codes=self._stats.status_codes.copy(),
            )

    def reset_stats(self) -> None:
        """Reset statistics."""
        with self._stats_lock:
            self._stats = TelemetryStats()

    def get_events(self) -> List[TelemetryEvent]:
        """Get all recorded events (for testing)."""
        with self._events_lock:
            return self._events.copy()

    def clear_events(self) -> None:
        """Clear event history."""
        with self._events_lock:
            self._events.clear()


# Process default recorder, used when none is injected
_global_recorder: Optional[TelemetryRecorder] = None
_recorder_lock = threading.Lock()


def get_recorder() -> TelemetryRecorder:
    """
    Get the default telemetry recorder instance.

    Creates a default recorder if none exists.
    """
    global _global_recorder

    if _global_recorder is None:
        with _recorder_lock:
            if _global_recorder is None:
                _global_recorder = TelemetryRecorder()

    return _global_recorder


def set_recorder(recorder: TelemetryRecorder) -> None:
    """
    Set the default telemetry recorder instance.

    Args:
        recorder: Recorder instance to use by default
    """
    global _global_recorder

    with _recorder_lock:
        _global_recorder = recorder


def create_event(
    method: str,
    endpoint: str,
    decision: TelemetryDecision,
    status: Optional[int] = None,
    elapsed_ms: float = 0.0,
    sleep_s: float = 0.0,
    headers_seen: Optional[Dict[str, str]] = None,
    bucket_key: str = "",
    quota_limit: Optional[int] = None,
    quota_remaining: Optional[int] = None,
    error_code: Optional[int] = None,
) -> TelemetryEvent:
    """
    Helper to create a telemetry event with current timestamp.

    Args:
        method: HTTP method
        endpoint: Request URL without query
        decision: What happened to the request
        status: HTTP status code
        elapsed_ms: Request duration in milliseconds
        sleep_s: Time held back by the rate tracker
        headers_seen: Rate limit headers from the response
        bucket_key: Rate limit bucket identifier
        quota_limit: Limit reported by the server
        quota_remaining: Remaining count reported by the server
        error_code: API error code

    Returns:
        TelemetryEvent ready for recording
    """
    return TelemetryEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        method=method,
        endpoint=endpoint,
        decision=decision.value,
        status=status,
        elapsed_ms=elapsed_ms,
        sleep_s=sleep_s,
        headers_seen=headers_seen or {},
        bucket_key=bucket_key,
        quota_limit=quota_limit,
        quota_remaining=quota_remaining,
        error_code=error_code,
    )
