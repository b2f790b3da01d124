from __future__ import annotations

import argparse
import logging
import signal
import time

from afterhandler.core.config.loader import load_settings, resolve_state_dir
from afterhandler.core.history.store import HistoryStore
from afterhandler.core.logging.setup import configure_logging
from afterhandler.core.queue.store import JsonlQueueStore
from afterhandler.core.registry.reader import RegistryReader
from afterhandler.core.workers.manager import Afterhandler

logger = logging.getLogger("afterhandler.worker")


class Worker:
    """Runs every active afterhandler until SIGINT/SIGTERM.

    ``registry`` is the record store's read side. Without it, key-meta
    ``afterhandlers`` routing in ``enqueue`` finds nothing, search-index
    ``create_index`` sends empty mappings and ``reindex`` is refused.
    Plain queue draining does not need it.
    """

    def __init__(self, config_path: str | None = None, registry: RegistryReader | None = None) -> None:
        self.settings = load_settings(config_path)
        self.state_dir = resolve_state_dir(self.settings)
        configure_logging(self.state_dir, log_name="worker")
        self.history_store = HistoryStore(self.state_dir)
        self.queue_store = JsonlQueueStore(self.state_dir, self.history_store)
        if registry is None:
            logger.info("worker_registry_not_configured")
        self.afterhandler = Afterhandler(self.settings, self.queue_store, self.history_store, registry=registry)
        self._running = True

    def _handle_signal(self, signum, frame) -> None:  # type: ignore[no-untyped-def]
        _ = frame
        logger.info("worker_signal_received", extra={"extra_fields": {"signum": signum}})
        self._running = False

    def run_forever(self) -> None:
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)
        self.afterhandler.start()
        logger.info("worker_started", extra={"extra_fields": {"state_dir": str(self.state_dir)}})
        try:
            while self._running:
                time.sleep(0.5)
        finally:
            self.afterhandler.dispose()
            logger.info("worker_stopped")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the afterhandler sync workers")
    parser.add_argument("--config", default=None, help="YAML config path (defaults to AFTERHANDLER_CONFIG)")
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    Worker(config_path=args.config).run_forever()


if __name__ == "__main__":
    run()
