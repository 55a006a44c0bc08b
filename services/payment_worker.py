import logging
import threading
from typing import Optional

from services.payments import PaymentService

logger = logging.getLogger(__name__)


class PaymentWorker:
    """Daemon thread that drains the payment outbox.

    Started and stopped by the application lifespan. Tests call run_once()
    directly instead of starting the thread.
    """

    def __init__(self, payments: PaymentService, interval: float = 2.0):
        self.payments = payments
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> int:
        """Process every event that is due now; returns how many were handled."""
        handled = 0
        while self.payments.process_next():
            handled += 1
        return handled

    def _loop(self) -> None:
        logger.info("Payment worker started (interval %.1fs)", self.interval)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Payment worker iteration failed")
            self._stop.wait(self.interval)
        logger.info("Payment worker stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="payment-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
