# src/auditor/utils/run_timers.py
import time
from typing import Dict, Optional


class RunTimers:
    """
    Measures elapsed time per named stage of an audit run.
    Only one stage is timed at a time: starting a stage stops the previous one.
    """

    def __init__(self):
        self._starts: Dict[str, float] = {}
        self._ends: Dict[str, float] = {}
        self._current: Optional[str] = None

    def start(self, stage: str) -> None:
        self.stop()
        self._starts[stage] = time.perf_counter()
        self._ends.pop(stage, None)
        self._current = stage

    def stop(self) -> None:
        """Stops the running stage, if any."""
        if self._current is not None:
            self._ends[self._current] = time.perf_counter()
            self._current = None

    def duration(self, stage: str) -> float:
        """Elapsed seconds for a stage; still counting if the stage is running."""
        start = self._starts.get(stage)
        if start is None:
            return 0.0
        end = self._ends.get(stage)
        return (end if end is not None else time.perf_counter()) - start

    @property
    def durations(self) -> Dict[str, float]:
        return {stage: round(self.duration(stage), 6) for stage in self._starts}

    @property
    def total(self) -> float:
        return sum(self.duration(stage) for stage in self._starts)

    def __repr__(self) -> str:
        return f"<RunTimers stages={len(self._starts)} total={self.total:.4f}s>"
