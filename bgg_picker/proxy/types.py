"""Relay endpoint and health data models for the proxy router."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

CUSTOM_ENDPOINT_ID = "custom"


class ResponseShape(str, Enum):
    """How a relay returns the upstream body."""

    RAW_TEXT = "raw_text"
    JSON_WRAPPED = "json_wrapped"  # payload under contents / data / body


@dataclass(frozen=True)
class Endpoint:
    """A relay through which an outbound GET is issued."""

    identifier: str
    url_template: str
    encodes_target: bool = True
    response_shape: ResponseShape = ResponseShape.RAW_TEXT
    sends_user_agent: bool = True

    def build_url(self, target_url: str) -> str:
        """Combine the relay prefix with the (optionally percent-encoded) target."""
        if self.encodes_target:
            # Unreserved marks stay literal; everything else is escaped
            return self.url_template + quote(target_url, safe="-_.!~*'()")
        return self.url_template + target_url

    @property
    def is_custom(self) -> bool:
        return self.identifier == CUSTOM_ENDPOINT_ID


@dataclass
class EndpointHealth:
    """Rolling success/failure statistics for one relay."""

    success_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    last_check_time: float | None = None
    last_success_time: float | None = None

    @property
    def total_attempts(self) -> int:
        return self.success_count + self.failure_count

    @property
    def success_rate(self) -> float:
        total = self.total_attempts
        if total == 0:
            return 0.0
        return self.success_count / total

    def to_dict(self) -> dict:
        """Serialise the counters; the success rate is always re-derived on load."""
        return {
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "consecutiveFailures": self.consecutive_failures,
            "lastCheck": self.last_check_time,
            "lastSuccess": self.last_success_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> EndpointHealth:
        return cls(
            success_count=int(data.get("successCount", 0)),
            failure_count=int(data.get("failureCount", 0)),
            consecutive_failures=int(data.get("consecutiveFailures", 0)),
            last_check_time=data.get("lastCheck"),
            last_success_time=data.get("lastSuccess"),
        )
