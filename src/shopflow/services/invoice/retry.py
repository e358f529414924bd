"""
Background sweep over Failed invoices.

Every ``interval`` seconds the sweep loads Failed invoices whose
``retry_count`` is below ``max_retry_count`` and runs each through
``CreateInvoiceHandler.complete()``, the same path a PaymentConfirmed
delivery takes. A failed retry increments ``retry_count``; once it
reaches the limit the invoice stays Failed for manual intervention.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from shopflow.services.invoice.commands import CreateInvoiceHandler
from shopflow.services.invoice.repository import InvoiceRepository

logger = logging.getLogger(__name__)

DEFAULT_RETRY_INTERVAL = 300.0
MAX_RETRY_COUNT = 3


@dataclass(frozen=True)
class RetrySweepResult:
    found: int = 0
    succeeded: int = 0
    failed: int = 0


class FailedInvoiceRetryService:
    """
    Periodic retry of Failed invoices.

    Example:
        >>> service = FailedInvoiceRetryService(repository, create_handler)
        >>> service.start()
        >>> ...
        >>> await service.stop()
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        handler: CreateInvoiceHandler,
        *,
        interval: float = DEFAULT_RETRY_INTERVAL,
        max_retry_count: int = MAX_RETRY_COUNT,
    ) -> None:
        self._repository = repository
        self._handler = handler
        self._interval = interval
        self._max_retry_count = max_retry_count
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="failed-invoice-retry")

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the current sweep to finish."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        logger.info(
            "FailedInvoiceRetryService started",
            extra={"interval": self._interval, "max_retry_count": self._max_retry_count},
        )
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(
                    f"Error in FailedInvoiceRetryService: {e}",
                    exc_info=True,
                    extra={"error": str(e), "error_type": type(e).__name__},
                )
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
        logger.info("FailedInvoiceRetryService stopped")

    async def run_once(self) -> RetrySweepResult:
        """Retry every eligible Failed invoice once."""
        invoices = await self._repository.get_failed_for_retry(self._max_retry_count)
        if not invoices:
            return RetrySweepResult()

        logger.info(
            f"Found {len(invoices)} failed invoices to retry",
            extra={"invoice_count": len(invoices)},
        )
        succeeded = 0
        for invoice in invoices:
            result = await self._handler.complete(invoice)
            if result.is_success:
                succeeded += 1
                logger.info(
                    f"Retried invoice {invoice.invoice_number} (retry #{invoice.retry_count})",
                    extra={
                        "invoice_number": invoice.invoice_number,
                        "retry_count": invoice.retry_count,
                    },
                )
            else:
                logger.error(
                    f"Failed to retry invoice {invoice.invoice_number} "
                    f"(retry #{invoice.retry_count}): {result.error}",
                    extra={
                        "invoice_number": invoice.invoice_number,
                        "retry_count": invoice.retry_count,
                        "error": result.error,
                    },
                )
        return RetrySweepResult(
            found=len(invoices),
            succeeded=succeeded,
            failed=len(invoices) - succeeded,
        )
