"""Pipeline orchestrator: list → dispatch → fetch → aggregate, under a deadline."""

from __future__ import annotations

import functools
import logging
import random
import threading
import time
from collections.abc import Callable
from datetime import tzinfo

from gmail_spam_counter.core.backoff import BackoffPolicy, call_with_retry
from gmail_spam_counter.core.exceptions import Cancelled, PipelineAborted
from gmail_spam_counter.core.models import DateHistogram, FetchProgress, PipelineConfig
from gmail_spam_counter.core.source import MessageSource
from gmail_spam_counter.pipeline.aggregator import DateAggregator
from gmail_spam_counter.pipeline.cancellation import CancellationToken, CancelReason
from gmail_spam_counter.pipeline.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class SpamCountPipeline:
    """Drives one run from the first list call to the finished histogram.

    Stages, as reported in ``FetchProgress.current_stage``:

    - listing:   page through ids sequentially (each call retried), handing
                 every id of a page to the worker pool before the next page
    - draining:  wait for the dispatched fetches
    - complete:  the histogram is returned
    - timed_out: the overall deadline fired; raises TimeoutExceeded
    - cancelled: ``cancel()`` or Ctrl-C; raises Cancelled
    - failed:    listing failed for good; the listing error propagates

    The run either returns the complete histogram or raises. Partial counts
    are discarded on every error path, and all workers are joined before
    ``run()`` returns.
    """

    def __init__(
        self,
        config: PipelineConfig,
        source: MessageSource,
        *,
        backoff: BackoffPolicy | None = None,
        on_progress: Callable[[FetchProgress], None] | None = None,
        tz: tzinfo | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._backoff = backoff or BackoffPolicy()
        self._on_progress = on_progress
        self._tz = tz
        self._rng = rng
        self._token = CancellationToken()
        self._progress = FetchProgress()
        self._started = False

    @property
    def progress(self) -> FetchProgress:
        return self._progress

    def cancel(self) -> None:
        """Stop the run from another thread or a signal handler."""
        if self._token.cancel(CancelReason.CANCELLED):
            logger.info("Cancellation requested")

    def run(self) -> DateHistogram:
        """Run the pipeline to completion.

        Returns:
            Mapping of local calendar date to message count.

        Raises:
            TimeoutExceeded: The overall deadline elapsed.
            Cancelled: The run was cancelled or interrupted.
            RetriesExhaustedError: A list call kept failing transiently.
            FatalRemoteError: A list call failed with a non-retryable error.
        """
        if self._started:
            raise RuntimeError("A SpamCountPipeline can only run once")
        self._started = True

        config = self._config
        aggregator = DateAggregator(tz=self._tz)
        pool = WorkerPool(
            self._source.get_minimal,
            aggregator.add,
            max_concurrent=config.max_concurrent_fetches,
            jitter_seconds=config.fetch_jitter_seconds,
            backoff=self._backoff,
            token=self._token,
            rng=self._rng,
        )
        deadline = threading.Timer(
            config.overall_timeout_seconds, self._token.cancel, args=(CancelReason.TIMEOUT,)
        )
        deadline.daemon = True

        logger.info(
            "Counting %s messages after %s (timeout %.0fs, %d concurrent fetches)",
            config.label_id, config.cutoff_date_str,
            config.overall_timeout_seconds, config.max_concurrent_fetches,
        )
        started_at = time.monotonic()
        deadline.start()

        try:
            self._list_and_dispatch(pool)
            self._set_stage("draining")
            pool.drain()
            self._token.raise_if_cancelled()
        except PipelineAborted:
            if self._token.reason is CancelReason.TIMEOUT:
                self._set_stage("timed_out")
            else:
                self._set_stage("cancelled")
            raise
        except KeyboardInterrupt:
            self._token.cancel(CancelReason.CANCELLED)
            self._set_stage("cancelled")
            raise Cancelled("Interrupted by user") from None
        except BaseException:
            self._token.cancel(CancelReason.ABORTED)
            self._set_stage("failed")
            raise
        finally:
            deadline.cancel()
            pool.shutdown()
            aggregator.close()
            self._progress.records_dropped = pool.dropped
            self._progress.records_invalid = aggregator.invalid_count

        histogram = aggregator.snapshot()
        self._progress.records_counted = sum(histogram.values())
        self._set_stage("complete")
        logger.info(
            "Counted %d messages over %d days in %.1fs (%d dispatched, %d dropped, %d invalid)",
            self._progress.records_counted, len(histogram), time.monotonic() - started_at,
            self._progress.ids_dispatched, self._progress.records_dropped,
            self._progress.records_invalid,
        )
        return histogram

    def _list_and_dispatch(self, pool: WorkerPool) -> None:
        """Stage 1: page through ids and hand each one to the pool."""
        self._set_stage("listing")
        query = self._config.message_query()
        logger.info("Gmail query: %s (label %s)", query.query, query.label_id)

        page_token: str | None = None
        while True:
            page = call_with_retry(
                functools.partial(self._source.list_page, query, page_token),
                self._backoff,
                self._token,
                "list messages",
            )
            self._progress.pages_listed += 1
            self._notify()
            logger.debug(
                "Listed page %d: %d ids", self._progress.pages_listed, len(page.message_ids)
            )

            for message_id in page.message_ids:
                pool.submit(message_id)
                self._progress.ids_dispatched += 1
                self._notify()

            page_token = page.next_page_token
            if not page_token:
                return

    def _set_stage(self, stage: str) -> None:
        self._progress.current_stage = stage
        self._notify()

    def _notify(self) -> None:
        """Send progress update to callback if registered."""
        if self._on_progress:
            self._on_progress(self._progress)


def run_pipeline(
    config: PipelineConfig,
    source: MessageSource,
    *,
    backoff: BackoffPolicy | None = None,
    on_progress: Callable[[FetchProgress], None] | None = None,
    tz: tzinfo | None = None,
    rng: random.Random | None = None,
) -> DateHistogram:
    """Build a :class:`SpamCountPipeline` and run it once."""
    pipeline = SpamCountPipeline(
        config, source, backoff=backoff, on_progress=on_progress, tz=tz, rng=rng
    )
    return pipeline.run()
