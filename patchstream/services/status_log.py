"""
Human-readable status lines for one generation run.

Every significant transition (file start/complete/interrupt, repair, policy
refusal, recovery, validation round) produces one line. Lines go to ``logging`` and to
a bounded in-memory tail, and optionally to an injected sink (a UI console,
an SSE channel, a test list).
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)

StatusSink = Callable[[str], None]

STATUS = "STATUS"
REPAIR = "REPAIR"
RECOVER = "RECOVER"
SAFETY = "SAFETY"
CONSTRAINTS = "constraints"


class StatusLog:
    def __init__(self, sink: Optional[StatusSink] = None, max_lines: int = 500):
        self._sink = sink
        self._lines: Deque[str] = deque(maxlen=max(1, int(max_lines)))

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def emit(self, tag: str, message: str, level: int = logging.INFO) -> str:
        line = f"[{tag}] {message}"
        self._lines.append(line)
        logger.log(level, line)
        if self._sink is not None:
            try:
                self._sink(line)
            except Exception as e:
                logger.error(f"Status sink failed: {e}")
        return line

    def status(self, message: str) -> str:
        return self.emit(STATUS, message)

    def repair(self, message: str) -> str:
        return self.emit(REPAIR, message)

    def recover(self, message: str) -> str:
        return self.emit(RECOVER, message)

    def safety(self, message: str) -> str:
        return self.emit(SAFETY, message, logging.WARNING)

    def constraints(self, message: str) -> str:
        return self.emit(CONSTRAINTS, message)
