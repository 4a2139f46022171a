"""Summary object returned by every batch job.

Jobs never raise for a single bad unit of work.  They count it, record the
reason and keep going, then hand this summary back to the caller (the
scheduler wrapper logs it, the admin endpoints return it as JSON).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List


@dataclass
class BatchSummary:
    job: str
    processed: int = 0
    skipped: int = 0
    errored: int = 0
    errors: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def skip(self, reason: str | None = None) -> None:
        self.skipped += 1
        if reason:
            self.extra.setdefault("skip_reasons", []).append(reason)

    def fail(self, message: str) -> None:
        self.errored += 1
        self.errors.append(message)

    @property
    def ok(self) -> bool:
        return self.errored == 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "job": self.job,
            "processed": self.processed,
            "skipped": self.skipped,
            "errored": self.errored,
            "errors": list(self.errors),
            "timestamp": datetime.utcnow().isoformat(),
        }
        out.update(self.extra)
        return out
