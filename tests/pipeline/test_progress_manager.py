# tests/pipeline/test_progress_manager.py
import asyncio
import io
import logging
from unittest.mock import MagicMock

from auditor.managers.progress_manager import ProgressManager
from auditor.model import EventKind
from auditor.services.event_bus import EventBus


def _feed(bus):
    bus.emit(EventKind.STAGE_CHANGE, {"stage": "Scanning", "previous": "Pending"})
    bus.emit(EventKind.PROGRESS, {"stage": "Scanning", "progress": 10})
    bus.emit(EventKind.LOG, {"level": "info", "message": "Scanning"})
    bus.emit(EventKind.STAGE_CHANGE, {"stage": "Routing", "previous": "Scanning"})
    bus.emit(EventKind.PROGRESS, {"stage": "Routing", "progress": 60})
    bus.emit(EventKind.LOG, {"level": "error", "message": "1.1.1: Missing alt", "selector": "img#a"})
    bus.emit(EventKind.LOG, {"level": "warning", "message": "Rule failed", "rule": "broken"})
    bus.emit(EventKind.PROGRESS, {"stage": "Reporting", "progress": 100})
    bus.emit(EventKind.STAGE_CHANGE, {"stage": "Completed", "previous": "Reporting"})


def test_follow_projects_events_onto_the_bar():
    out = io.StringIO()

    async def scenario():
        bus = EventBus("run-1")
        progress = ProgressManager(desc="Audit", file=out)
        sub = bus.subscribe()
        _feed(bus)
        return progress, await progress.follow(sub)

    progress, final_stage = asyncio.run(scenario())
    assert final_stage == "Completed"
    assert progress.pbar.n == 100
    assert progress.stage == "Completed"
    # Only violation logs count as issues
    assert progress.issues == 1
    assert "Audit" in out.getvalue()


def test_progress_never_moves_backwards():
    progress = ProgressManager(file=io.StringIO())
    progress.set_progress(50)
    progress.set_progress(30)
    progress.set_progress(250)
    assert progress.pbar.n == 100
    progress.close()


def test_disabled_bar_still_tracks_stage():
    async def scenario():
        bus = EventBus("run-1")
        progress = ProgressManager(disable=True)
        sub = bus.subscribe()
        bus.emit(EventKind.STAGE_CHANGE, {"stage": "Failed", "previous": "Scanning"})
        return await progress.follow(sub)

    assert asyncio.run(scenario()) == "Failed"


def test_close_logs_bar_errors_with_the_exception(caplog):
    progress = ProgressManager(file=io.StringIO())
    progress.pbar = MagicMock()
    progress.pbar.close.side_effect = OSError("stream gone")

    with caplog.at_level(logging.ERROR, logger="auditor.managers.progress_manager"):
        progress.close()

    record = caplog.records[-1]
    assert record.msg == "Error encountered while closing progress bar: %s"
    assert str(record.args[0]) == "stream gone"
