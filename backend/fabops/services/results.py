# Overview: Aggregate result returned by best-effort batch inventory operations.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class BatchResult:
    """
    Outcome of a multi-item inventory operation.

    Items are processed independently: a failure is appended to `errors`
    and the loop continues. `success` is decided by the operation that built
    the result (e.g. job-card reversal succeeds if anything was restored or
    nothing failed).

    `action` is the past-tense verb used in the user-facing summary
    ("restored", "updated", ...).
    """
    action: str
    succeeded: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    success: bool = True

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def degraded_count(self) -> int:
        return sum(1 for item in self.succeeded if item.get("degraded"))

    @property
    def error(self) -> str | None:
        return "; ".join(self.errors) if self.errors else None

    def summary(self) -> str:
        """Notification text shown to the operator."""
        if self.succeeded_count == 0 and self.error_count == 0:
            return f"No materials needed to be {self.action}"

        parts = []
        if self.succeeded_count:
            text = f"{self.action.capitalize()} inventory for {self.succeeded_count} material(s)"
            if self.degraded_count:
                text += f" ({self.degraded_count} using current consumption as fallback)"
            parts.append(text)
        if self.error_count:
            parts.append(f"{self.error_count} material(s) could not be {self.action}")
        return "; ".join(parts)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "error": self.error,
            "errors": list(self.errors),
            "succeeded_count": self.succeeded_count,
            "error_count": self.error_count,
            "degraded_count": self.degraded_count,
            "message": self.summary(),
            "materials": list(self.succeeded),
        }
