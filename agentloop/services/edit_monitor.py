"""Edit failure statistics, used to spot files the backend keeps mis-editing.

Counters only ever grow for the life of the process; ``clear()`` is the one
reset. Recording never blocks or alters an edit.

Each path's ``FailureStats`` carries its own lock, so edits to different
files never contend; the monitor-wide lock only guards inserting a new
path and ``clear()``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

STRING_NOT_FOUND = "String not found"


@dataclass
class FailureStats:
    """Per-path edit counters."""

    path: str
    failure_count: int = 0
    total_attempts: int = 0
    fuzzy_match_success_count: int = 0
    failure_reasons: dict[str, int] = field(default_factory=dict)
    last_failure_time: datetime | None = None
    fuzzy_similarities: list[float] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def failure_rate(self) -> float:
        return self.failure_count / self.total_attempts if self.total_attempts else 0.0

    @property
    def success_rate(self) -> float:
        return 1.0 - self.failure_rate

    def to_dict(self) -> dict:
        return {
            "failure_count": self.failure_count,
            "total_attempts": self.total_attempts,
            "success_rate": self.success_rate,
            "fuzzy_match_success_count": self.fuzzy_match_success_count,
            "failure_reasons": dict(self.failure_reasons),
            "last_failure_time": (
                self.last_failure_time.isoformat() if self.last_failure_time else None
            ),
        }


class EditFailureMonitor:
    def __init__(self) -> None:
        self._stats: dict[str, FailureStats] = {}
        self._insert_lock = threading.Lock()

    def _get(self, path: str) -> FailureStats:
        stats = self._stats.get(path)
        if stats is None:
            with self._insert_lock:
                stats = self._stats.setdefault(path, FailureStats(path))
        return stats

    def record_failure(self, path: str, reason: str) -> None:
        stats = self._get(path)
        with stats.lock:
            stats.failure_count += 1
            stats.total_attempts += 1
            stats.last_failure_time = datetime.now(timezone.utc)
            stats.failure_reasons[reason] = stats.failure_reasons.get(reason, 0) + 1
            failures = stats.failure_count
        logger.warning("Edit failure in %s: %s (failures: %d)", path, reason, failures)

    def record_fuzzy_match_success(self, path: str, similarity: float) -> None:
        stats = self._get(path)
        with stats.lock:
            stats.fuzzy_match_success_count += 1
            stats.total_attempts += 1
            stats.fuzzy_similarities.append(similarity)
        logger.debug("Fuzzy match success in %s: similarity=%.3f", path, similarity)

    def record_success(self, path: str) -> None:
        stats = self._get(path)
        with stats.lock:
            stats.total_attempts += 1

    def get_failure_stats(self, path: str) -> dict | None:
        stats = self._stats.get(path)
        if stats is None:
            return None
        with stats.lock:
            return stats.to_dict()

    def get_average_fuzzy_similarity(self, path: str) -> float | None:
        stats = self._stats.get(path)
        if stats is None:
            return None
        with stats.lock:
            if not stats.fuzzy_similarities:
                return None
            return sum(stats.fuzzy_similarities) / len(stats.fuzzy_similarities)

    def get_overall_stats(self) -> dict:
        total_files = 0
        total_failures = 0
        total_attempts = 0
        total_fuzzy = 0
        files_with_failures = 0
        reasons: dict[str, int] = {}
        for stats in list(self._stats.values()):
            with stats.lock:
                total_files += 1
                total_failures += stats.failure_count
                total_attempts += stats.total_attempts
                total_fuzzy += stats.fuzzy_match_success_count
                if stats.failure_count > 0:
                    files_with_failures += 1
                for reason, count in stats.failure_reasons.items():
                    reasons[reason] = reasons.get(reason, 0) + count
        return {
            "total_files": total_files,
            "total_failures": total_failures,
            "total_attempts": total_attempts,
            "overall_success_rate": (
                1.0 - total_failures / total_attempts if total_attempts else 1.0
            ),
            "total_fuzzy_matches": total_fuzzy,
            "failure_reasons": reasons,
            "files_with_failures": files_with_failures,
        }

    def has_high_failure_rate(self, path: str, threshold: float = 0.5) -> bool:
        stats = self._stats.get(path)
        if stats is None:
            return False
        with stats.lock:
            if stats.total_attempts < 3:
                return False
            return stats.failure_rate >= threshold

    def get_recommendations(self, path: str | None = None) -> list[str]:
        """Ordered hints for improving edit success, per path or overall."""
        recommendations: list[str] = []

        if path is not None:
            stats = self._stats.get(path)
            if stats is None:
                return recommendations
            with stats.lock:
                failure_rate = stats.failure_rate
                not_found = stats.failure_reasons.get(STRING_NOT_FOUND, 0)
                fuzzy_rate = (
                    stats.fuzzy_match_success_count / stats.total_attempts
                    if stats.total_attempts else 0.0
                )
            if failure_rate > 0.5:
                recommendations.append(
                    f"High failure rate ({int(failure_rate * 100)}%) for {path}"
                )
            if not_found > 0:
                recommendations.append(
                    f"Consider using more context in old_string "
                    f"({not_found} '{STRING_NOT_FOUND}' errors)"
                )
            if fuzzy_rate > 0.3:
                recommendations.append(
                    f"Fuzzy matching is frequently needed ({int(fuzzy_rate * 100)}% of edits)"
                )
            return recommendations

        overall = self.get_overall_stats()
        success_rate = overall["overall_success_rate"]
        if success_rate < 0.8:
            recommendations.append(
                f"Overall edit success rate is {int(success_rate * 100)}% "
                "- consider improving string matching"
            )
        not_found = overall["failure_reasons"].get(STRING_NOT_FOUND, 0)
        if not_found > 10:
            recommendations.append(
                f"'{STRING_NOT_FOUND}' is the main issue ({not_found} occurrences) "
                "- improve context in old_string"
            )
        return recommendations

    def clear(self) -> None:
        with self._insert_lock:
            self._stats.clear()


_MONITOR: EditFailureMonitor | None = None


def get_edit_failure_monitor() -> EditFailureMonitor:
    """Get the shared monitor (lazily initialized)."""
    global _MONITOR
    if _MONITOR is None:
        _MONITOR = EditFailureMonitor()
    return _MONITOR
