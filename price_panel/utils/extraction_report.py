"""
Per-unit extraction outcomes collected into a run-level report
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class IncompleteExtractionError(RuntimeError):
    """Some units failed, so the extract must not be treated as finished"""


class UnitStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class UnitResult:
    """Outcome of extracting one partition or one hospital"""
    unit: str
    status: UnitStatus
    rows: int = 0
    reason: Optional[str] = None

    @classmethod
    def from_rows(cls, unit: str, rows: int) -> "UnitResult":
        return cls(unit, UnitStatus.SUCCESS if rows > 0 else UnitStatus.EMPTY, rows)

    @classmethod
    def failure(cls, unit: str, error: BaseException) -> "UnitResult":
        return cls(unit, UnitStatus.FAILED, 0, f"{type(error).__name__}: {error}")


@dataclass
class ExtractionReport:
    label: str
    results: List[UnitResult] = field(default_factory=list)
    queries_issued: int = 0
    ambiguous_rows: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def add(self, result: UnitResult) -> UnitResult:
        self.results.append(result)
        if result.status is UnitStatus.FAILED:
            logger.warning(f"  ERROR on {result.unit}: {result.reason}")
        return result

    def _with_status(self, status: UnitStatus) -> List[UnitResult]:
        return [r for r in self.results if r.status is status]

    @property
    def succeeded(self) -> List[UnitResult]:
        return self._with_status(UnitStatus.SUCCESS)

    @property
    def empty(self) -> List[UnitResult]:
        return self._with_status(UnitStatus.EMPTY)

    @property
    def failed(self) -> List[UnitResult]:
        return self._with_status(UnitStatus.FAILED)

    @property
    def skipped(self) -> List[UnitResult]:
        return self._with_status(UnitStatus.SKIPPED)

    @property
    def complete(self) -> bool:
        """At least one unit ran and none failed"""
        return bool(self.results) and not self.failed

    @property
    def total_rows(self) -> int:
        return sum(r.rows for r in self.results)

    @property
    def elapsed_minutes(self) -> float:
        return (time.monotonic() - self.started_at) / 60

    def summary(self) -> Dict[str, object]:
        return {
            'label': self.label,
            'units': len(self.results),
            'with_data': len(self.succeeded),
            'empty': len(self.empty),
            'skipped': len(self.skipped),
            'errors': len(self.failed),
            'rows': self.total_rows,
            'queries': self.queries_issued,
            'ambiguous_rows': self.ambiguous_rows,
        }

    def log_summary(self) -> None:
        s = self.summary()
        logger.info(
            f"{self.label} done: {s['rows']:,} rows from {s['with_data']} units "
            f"({s['empty']} empty, {s['skipped']} skipped, {s['errors']} errors) "
            f"in {self.elapsed_minutes:.1f} min"
        )
        for result in self.failed:
            logger.info(f"  failed: {result.unit} ({result.reason})")
