"""Tagged outcome type shared by the classification stages."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class StageResult:
    """Tagged outcome of one classification stage."""
    ok: bool
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value) -> "StageResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error) -> "StageResult":
        return cls(ok=False, error=str(error))
