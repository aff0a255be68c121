# src/auditor/managers/progress_manager.py
import logging
import sys
from typing import Optional

from tqdm import tqdm

from auditor.model import Event, EventKind
from auditor.services.event_bus import Subscription

logger = logging.getLogger(__name__)


class ProgressManager:
    """
    Console projection of one audit run: a 0-100 tqdm bar whose description
    follows the pipeline stage.
    """

    def __init__(self, desc: str = "Audit", file=None, disable: bool = False):
        self.pbar = tqdm(
            total=100,
            desc=desc,
            unit="%",
            dynamic_ncols=True,
            mininterval=0.1,
            postfix={"stage": "Pending", "issues": 0},
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}] {postfix}",
            file=file or sys.stdout,
            disable=disable,
        )
        self.stage = "Pending"
        self.issues = 0
        self.final_stage: Optional[str] = None

    def apply(self, event: Event) -> None:
        """Projects one event onto the bar."""
        if event.kind == EventKind.PROGRESS:
            self.set_progress(int(event.payload.get("progress", 0)))
        elif event.kind == EventKind.STAGE_CHANGE:
            self.stage = event.payload.get("stage", self.stage)
            if event.is_terminal:
                self.final_stage = self.stage
            self._refresh_postfix()
        elif event.kind == EventKind.LOG and event.payload.get("level") in ("error", "warning") \
                and "selector" in event.payload:
            self.issues += 1
            self._refresh_postfix()

    def set_progress(self, progress: int) -> None:
        progress = max(0, min(100, progress))
        if progress > self.pbar.n:
            self.pbar.update(progress - self.pbar.n)

    def _refresh_postfix(self) -> None:
        self.pbar.set_postfix({"stage": self.stage, "issues": self.issues}, refresh=False)

    async def follow(self, subscription: Subscription) -> Optional[str]:
        """Consumes a run's event stream until it ends; returns the terminal stage name."""
        try:
            async for event in subscription:
                self.apply(event)
        finally:
            self.close()
        return self.final_stage

    def close(self) -> None:
        if not self.pbar:
            return
        try:
            self._refresh_postfix()
            self.pbar.close()
            logger.debug("ProgressManager: Progress bar closed.")
        except Exception as e:
            logger.error("Error encountered while closing progress bar: %s", e)
