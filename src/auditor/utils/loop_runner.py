# src/auditor/utils/loop_runner.py
from __future__ import annotations

import asyncio
import threading
from typing import Any, Coroutine, Optional

_MAIN_LOOP: Optional[asyncio.AbstractEventLoop] = None
_THREAD: Optional[threading.Thread] = None
_LOCK = threading.Lock()


def ensure_background_loop() -> asyncio.AbstractEventLoop:
    """
    Ensures a persistent asyncio event loop is running on a daemon thread
    and returns it. Synchronous callers submit audits to this loop.
    """
    global _MAIN_LOOP, _THREAD
    with _LOCK:
        if _MAIN_LOOP is not None:
            return _MAIN_LOOP

        loop = asyncio.new_event_loop()

        def _run_loop(loop_: asyncio.AbstractEventLoop) -> None:
            asyncio.set_event_loop(loop_)
            loop_.run_forever()

        t = threading.Thread(target=_run_loop, args=(loop,), name="auditor-loop", daemon=True)
        t.start()

        _MAIN_LOOP = loop
        _THREAD = t
        return loop


def run_on_main_loop(coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
    """
    Executes a coroutine on the background loop and blocks for its result.
    Falls back to asyncio.run() when no background loop was started.
    """
    if _MAIN_LOOP is not None:
        fut = asyncio.run_coroutine_threadsafe(coro, _MAIN_LOOP)
        return fut.result(timeout)

    return asyncio.run(coro)


def stop_background_loop() -> None:
    """Stops the background loop and joins its thread."""
    global _MAIN_LOOP, _THREAD
    with _LOCK:
        if _MAIN_LOOP is None:
            return
        _MAIN_LOOP.call_soon_threadsafe(_MAIN_LOOP.stop)
        if _THREAD is not None:
            _THREAD.join(timeout=5)
        _MAIN_LOOP.close()
        _MAIN_LOOP = None
        _THREAD = None
