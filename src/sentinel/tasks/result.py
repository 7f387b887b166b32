"""
Batch results and failure kinds.

A BatchResult is produced for every batch the send engine issues and
aggregated into one result per invocation. It is ephemeral: the coordinator
consumes it, logs it and drops it. ``errors`` and ``failed_lines`` double as
the replay payload for the failed subset of an invocation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class ErrorKind(Enum):
    """Classification of a failed send"""

    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"
    CONFIGURATION = "configuration"


@dataclass
class BatchResult:
    """
    Outcome of sending one batch, or of a whole invocation once aggregated.

    Attributes:
        number_of_lines: Records covered by this result
        result: True when every record was delivered
        errors: Failure messages in the order they happened
        failed_lines: Records that ultimately failed, ready for replay
        error_kind: Classification of the failure, None on success
        batch_id: Position of the batch inside its invocation
    """

    number_of_lines: int = 0
    result: bool = True
    errors: List[str] = field(default_factory=list)
    failed_lines: List[str] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    batch_id: Optional[int] = None

    @classmethod
    def success(cls, number_of_lines: int = 0) -> "BatchResult":
        return cls(number_of_lines=number_of_lines, result=True)

    @classmethod
    def failure(
        cls,
        lines: List[str],
        message: str,
        kind: ErrorKind = ErrorKind.NON_RETRYABLE,
    ) -> "BatchResult":
        """Failed result covering ``lines`` with a single error message"""
        return cls(
            number_of_lines=len(lines),
            result=False,
            errors=[message],
            failed_lines=list(lines),
            error_kind=kind,
        )

    @classmethod
    def aggregate(cls, results: Iterable["BatchResult"]) -> "BatchResult":
        """
        Merge per-batch results into one invocation-level result.

        Results are ordered by batch id before merging, so the outcome does
        not depend on the order in which lanes finished their batches.
        """
        ordered = sorted(
            results,
            key=lambda r: (r.batch_id is None, r.batch_id if r.batch_id else 0),
        )
        merged = cls(number_of_lines=0, result=True)
        for batch in ordered:
            merged.number_of_lines += batch.number_of_lines
            merged.errors.extend(batch.errors)
            merged.failed_lines.extend(batch.failed_lines)
            if not batch.result:
                merged.result = False
                if merged.error_kind is None:
                    merged.error_kind = batch.error_kind
        return merged

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and replay"""
        return {
            "numberOfLines": self.number_of_lines,
            "result": self.result,
            "errors": list(self.errors),
            "failedLines": list(self.failed_lines),
            "errorKind": self.error_kind.value if self.error_kind else None,
        }
