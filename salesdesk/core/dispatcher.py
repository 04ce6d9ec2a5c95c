# ------------------------------------------------------------------------
# File: dispatcher.py
# Location: salesdesk/core/dispatcher.py
# Description:
#     Fire-and-forget execution of the follow-up work that a committed
#     transition triggers: activity log rows, real-time events, outbound
#     email, contract/client creation. Each effect runs on a worker thread
#     inside its own error boundary. A failure is logged as a
#     SideEffectFailure and never reaches the request that caused it.
#     Delivery is at-most-once; nothing here survives a process crash.
# ------------------------------------------------------------------------

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable

from salesdesk.core.errors import SideEffectFailure
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.dispatcher", "salesdesk.log")


@dataclass(frozen=True)
class Effect:
    name: str
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class EffectDispatcher:
    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="salesdesk-effect")
        self._lock = threading.Lock()
        self._pending: set = set()
        self.failures: list[SideEffectFailure] = []

    def dispatch(self, *effects: Effect) -> None:
        """Queue each effect independently and return immediately."""
        for effect in effects:
            if effect is None:
                continue
            try:
                future = self._executor.submit(self._run, effect)
            except RuntimeError as exc:
                # Executor already shut down; the transition has committed regardless.
                self._record(SideEffectFailure(effect.name, exc))
                continue
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._forget)

    def _forget(self, future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _run(self, effect: Effect) -> None:
        try:
            effect.func(*effect.args, **effect.kwargs)
            logger.debug("Side effect %s completed", effect.name)
        except Exception as exc:
            self._record(SideEffectFailure(effect.name, exc))

    def _record(self, failure: SideEffectFailure) -> None:
        with self._lock:
            self.failures.append(failure)
        logger.error("%s", failure, exc_info=True)

    def wait_idle(self, timeout: float | None = 10.0) -> bool:
        """
        Block until every queued effect, including effects queued by other
        effects, has finished. Returns False on timeout.
        """
        while True:
            with self._lock:
                pending = list(self._pending)
            if not pending:
                return True
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)
