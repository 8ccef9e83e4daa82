"""
Classification data models.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class Status(str, Enum):
    """
    Record status, ordered by severity.

    ERROR only ever describes a failed query, never a threshold breach.
    """

    OK = "OK"
    WARNING = "WARNING"
    ATTENTION = "ATTENTION"
    ERROR = "ERROR"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def escalate(self, other: "Status") -> "Status":
        """Return the more severe of the two statuses."""
        return other if other.rank > self.rank else self


_STATUS_RANK = {
    Status.OK: 0,
    Status.WARNING: 1,
    Status.ATTENTION: 2,
    Status.ERROR: 3,
}


class Verdict(BaseModel):
    """Classifier output attached to a record: status plus ordered reasons."""

    status: Status = Status.OK
    reasons: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


class Thresholds(BaseModel):
    """Thresholds applied to health records (all comparisons are strict)."""

    disk_percent: float = Field(default=80.0, ge=0.0, le=100.0)
    memory_percent: float = Field(default=90.0, ge=0.0, le=100.0)
    stale_boot_days: float = Field(default=30.0, ge=0.0)

    class Config:
        frozen = True
