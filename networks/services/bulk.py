"""
Chunked bulk processing against one adapter.

Records are split into chunks no larger than the adapter's
``max_batch_size`` and handed to a caller-supplied handler one chunk at a
time, with the adapter's rate limit enforced before each chunk. A chunk is
the unit of failure: if the handler raises, every record in it is reported
as failed.
"""

import time
import logging
from typing import Any, Callable, List

from core.exceptions import AffiliateNetworkError, ValidationError
from networks.services.filters import batch_records
from networks.types import BulkOperationError, BulkOperationResult

logger = logging.getLogger(__name__)

ABORTED = "aborted"


class BulkOperationExecutor:
    """
    Usage::

        result = BulkOperationExecutor(adapter).execute(records, push_chunk)
        if not result.is_complete_success:
            retry = [records[e.index] for e in result.errors if e.retryable]

    ``success_count + error_count`` always equals ``total_records``; with
    ``continue_on_error=False`` the records after a failing chunk are
    reported as ``aborted`` (retryable) instead of being silently dropped.
    """

    def __init__(self, adapter, clock: Callable[[], float] = time.monotonic):
        self.adapter = adapter
        self._clock = clock

    def chunk_size(self, batch_size: int = None) -> int:
        maximum = self.adapter.capabilities.max_batch_size
        if batch_size is not None and batch_size <= 0:
            raise ValidationError("batch_size must be positive", field="batch_size")
        return min(batch_size, maximum) if batch_size else maximum

    def execute(self, records: List[Any], handler: Callable[[List[Any]], Any],
                batch_size: int = None, continue_on_error: bool = True) -> BulkOperationResult:
        self.adapter.ensure_capability("bulk_operations", "execute_bulk")
        size = self.chunk_size(batch_size)
        records = list(records)
        result = BulkOperationResult(total_records=len(records))
        network = self.adapter.network_type.value
        started = self._clock()

        offset = 0
        for chunk in batch_records(records, size):
            self.adapter.enforce_rate_limit()
            try:
                handler(chunk)
            except Exception as exc:
                retryable = isinstance(exc, AffiliateNetworkError) and exc.retryable
                message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
                logger.warning(
                    f"[{network}] Bulk chunk {offset}-{offset + len(chunk) - 1} failed: {message}"
                )
                result.errors.extend(
                    BulkOperationError(index=offset + i, error=message, retryable=retryable)
                    for i in range(len(chunk))
                )
                result.error_count += len(chunk)
                offset += len(chunk)
                if not continue_on_error:
                    break
                continue

            result.success_count += len(chunk)
            offset += len(chunk)

        if offset < len(records):
            result.errors.extend(
                BulkOperationError(index=index, error=ABORTED, retryable=True)
                for index in range(offset, len(records))
            )
            result.error_count += len(records) - offset

        result.duration = self._clock() - started
        logger.info(
            f"[{network}] Bulk operation: {result.success_count}/{result.total_records} succeeded "
            f"in {result.duration:.2f}s"
        )
        return result
