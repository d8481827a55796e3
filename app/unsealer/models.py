from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SealStatus(BaseModel):
    """Snapshot von /v1/sys/seal-status bzw. der Antwort von /v1/sys/unseal."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    sealed: bool = Field(..., strict=True)
    progress: int = Field(default=0, strict=True)
    # Vault liefert den Threshold als "t"
    threshold: Optional[int] = Field(default=None, alias="t", strict=True)


class Outcome(str, Enum):
    ALREADY_UNSEALED = "already_unsealed"
    UNSEALED = "unsealed"
    PARTIALLY_SUBMITTED = "partially_submitted"
    FAILED = "failed"


class FailureReason(str, Enum):
    UNREACHABLE = "unreachable"
    PROTOCOL = "protocol-error"
    KEY_FETCH = "key-fetch-error"
    UNEXPECTED = "unexpected"


class ReconcileResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: str
    outcome: Outcome
    reason: Optional[FailureReason] = None
    detail: str = Field(default="")
    submitted: int = Field(default=0, description="Anzahl eingereichter Key-Shares")
    progress: Optional[int] = None
    threshold: Optional[int] = None

    @property
    def is_failure(self) -> bool:
        return self.outcome in (Outcome.FAILED, Outcome.PARTIALLY_SUBMITTED)

    def to_event(self) -> dict:
        """Payload für den Event-Bus (ohne Schlüsselmaterial)."""
        return self.model_dump(mode="json")
