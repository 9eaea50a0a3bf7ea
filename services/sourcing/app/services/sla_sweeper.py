from __future__ import annotations

import threading
from typing import Callable

from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.logging import get_logger
from .notifications import Notifier
from .slack_client import SlackClient
from .sla import SlaService


class SlaSweepRunner(threading.Thread):
    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_sec: int,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(daemon=True, name="sla-sweeper")
        self._session_factory = session_factory
        self._interval = interval_sec
        self._notifier = notifier or Notifier(session_factory)
        self._stop_event = threading.Event()
        self._logger = get_logger(__name__)

    def run_once(self) -> dict[str, int]:
        with self._session_factory() as session:
            return SlaService(session, self._notifier).run_reminder_sweep()

    def run(self) -> None:  # pragma: no cover - background loop
        while not self._stop_event.is_set():
            try:
                result = self.run_once()
                self._logger.info("sla.sweeper.cycle_complete", **result)
            except Exception as exc:
                # Keep loop alive; the next cycle retries
                self._logger.warning("sla.sweeper.cycle_error", error=str(exc))
            self._stop_event.wait(self._interval)

    def stop(self) -> None:
        self._stop_event.set()


def maybe_start_sla_sweeper(app, session_factory) -> SlaSweepRunner | None:
    settings = get_settings()
    if not settings.sla_sweep_enabled:
        return None
    notifier = Notifier(session_factory, SlackClient(settings.slack_webhook_url))
    runner = SlaSweepRunner(session_factory, settings.sla_sweep_interval_sec, notifier)
    runner.start()
    app.state.sla_sweeper = runner
    get_logger(__name__).info(
        "sla.sweeper.started", interval_sec=settings.sla_sweep_interval_sec
    )
    return runner


def maybe_stop_sla_sweeper(app) -> None:
    runner = getattr(app.state, "sla_sweeper", None)
    if runner is None:
        return
    runner.stop()
    runner.join(timeout=5)
    app.state.sla_sweeper = None
    get_logger(__name__).info("sla.sweeper.stopped")
