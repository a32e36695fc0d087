"""Screening orchestrator.

:class:`ScreenerEngine` fans out one pipeline per requested ticker through a
bounded thread pool, classifies every ticker into a :class:`Disposition`,
and reports one :class:`ScreenProgress` per ticker.  The macro snapshot is
fetched once before any pipeline starts; cross-sectional normalization runs
only after every pipeline has finished.
"""

from __future__ import annotations

import logging
import os
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable

from screener import scoring
from screener.models import (
    NEUTRAL_MACRO,
    Disposition,
    MacroSnapshot,
    NormalizationMode,
    OptionsSnapshot,
    ScreenProgress,
    ScreenRequest,
    ScreenResult,
)
from screener.normalize import normalize_and_rescore

if TYPE_CHECKING:
    from data.providers.base import (
        FundamentalsProvider,
        MacroDataProvider,
        OptionsDataProvider,
        PriceDataProvider,
    )

logger = logging.getLogger(__name__)

_MAX_DEFAULT_CONCURRENCY = 8

ProgressSink = Callable[[ScreenProgress], None]


class ScreenCancelled(Exception):
    """Raised by :meth:`ScreenerEngine.screen` after a cancelled run has wound down.

    Attributes:
        results: Results of the pipelines that completed before cancellation.
    """

    def __init__(self, results: list[ScreenResult]) -> None:
        super().__init__(f"Screen cancelled ({len(results)} results completed)")
        self.results = results


class _Cancelled(Exception):
    """Internal signal: the run's cancel event was set mid-pipeline."""


class ScreenerEngine:
    """Run screening requests against four data providers.

    Parameters
    ----------
    prices, fundamentals, macro, options
        Provider instances for each capability.
    max_concurrency : int or None
        Upper bound on simultaneously active ticker pipelines.  Defaults to
        ``min(os.cpu_count(), 8)``.  Ignored (forced to 1) when the
        fundamentals provider is rate limited.
    """

    def __init__(
        self,
        prices: PriceDataProvider,
        fundamentals: FundamentalsProvider,
        macro: MacroDataProvider,
        options: OptionsDataProvider,
        *,
        max_concurrency: int | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._prices = prices
        self._fundamentals = fundamentals
        self._macro = macro
        self._options = options
        self._max_concurrency = max_concurrency

    @classmethod
    def from_config(cls) -> "ScreenerEngine":
        """Build an engine from the ``providers`` and ``screener`` config sections."""
        from app.config import get_value
        from data.providers import (
            get_fundamentals_provider,
            get_macro_provider,
            get_options_provider,
            get_price_provider,
        )

        max_concurrency = get_value("screener.max_concurrency")
        return cls(
            prices=get_price_provider(get_value("providers.price", "stooq")),
            fundamentals=get_fundamentals_provider(get_value("providers.fundamentals", "config")),
            macro=get_macro_provider(get_value("providers.macro", "config")),
            options=get_options_provider(get_value("providers.options", "none")),
            max_concurrency=int(max_concurrency) if max_concurrency else None,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def concurrency(self) -> int:
        """Effective pipeline bound for this engine's providers."""
        if self._fundamentals.rate_limited:
            return 1
        if self._max_concurrency is not None:
            return self._max_concurrency
        return max(1, min(os.cpu_count() or 1, _MAX_DEFAULT_CONCURRENCY))

    def screen(
        self,
        request: ScreenRequest,
        progress: ProgressSink | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[ScreenResult]:
        """Screen every ticker in *request* and return the included results.

        Args:
            request: Tickers, date range, weights, optional filters and
                normalization mode.
            progress: Called once per ticker, from worker threads, with a
                monotonically increasing completed count.  Calls are
                serialized.
            cancel_event: Setting it stops pipelines at their next provider
                call.

        Returns:
            Included results in request order (normalized when requested).

        Raises:
            ValueError: Empty ticker list or ``end`` before ``start``.
            ScreenCancelled: *cancel_event* was set; raised once every
                pipeline has finished.
        """
        self._validate(request)
        cancel = cancel_event or threading.Event()

        macro = self._fetch_macro()

        total = len(request.tickers)
        bound = self.concurrency
        gate = threading.BoundedSemaphore(bound)
        progress_lock = threading.Lock()
        completed = 0
        dispositions: Counter[Disposition] = Counter()

        def run_one(raw: str) -> ScreenResult | None:
            nonlocal completed
            ticker = ""
            disposition = Disposition.FAILED
            result: ScreenResult | None = None
            try:
                ticker = "" if raw is None else str(raw).strip().upper()
                disposition, result = self._pipeline(ticker, request, macro, cancel)
            except _Cancelled:
                logger.debug("Pipeline for %s cancelled", ticker or "<blank>")
            except Exception:
                logger.exception("Unexpected error screening %s", ticker or "<blank>")
            finally:
                with progress_lock:
                    completed += 1
                    dispositions[disposition] += 1
                    if progress is not None:
                        try:
                            progress(ScreenProgress(ticker, completed, total, disposition))
                        except Exception:
                            logger.exception("Progress callback failed for %s", ticker)
                gate.release()
            return result

        logger.info(
            "Screening %d tickers (concurrency=%d, normalization=%s)",
            total, bound, request.normalization.value,
        )

        futures: list[Future[ScreenResult | None]] = []
        with ThreadPoolExecutor(max_workers=bound, thread_name_prefix="screen") as pool:
            for raw in request.tickers:
                gate.acquire()
                futures.append(pool.submit(run_one, raw))

        # The pool has joined: every pipeline is done and nothing mutates
        # the collected results from here on.
        results = [r for r in (f.result() for f in futures) if r is not None]

        logger.info(
            "Screen complete: %d/%d included (%s)",
            len(results), total,
            ", ".join(f"{d.value}={n}" for d, n in sorted(
                dispositions.items(), key=lambda kv: kv[0].value,
            )),
        )

        if cancel.is_set():
            raise ScreenCancelled(results)

        if request.normalization is not NormalizationMode.NONE and len(results) > 1:
            results = normalize_and_rescore(
                results, request.weights, request.normalization, request.min_group_size,
            )
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(request: ScreenRequest) -> None:
        if request is None:
            raise ValueError("request is required")
        if not request.tickers:
            raise ValueError("At least one ticker is required")
        if request.end < request.start:
            raise ValueError("End date must be on or after start date")
        if request.min_group_size < 1:
            raise ValueError("min_group_size must be >= 1")

    def _fetch_macro(self) -> MacroSnapshot:
        """Fetch the run's macro snapshot, failing open to :data:`NEUTRAL_MACRO`."""
        try:
            return self._macro.fetch_snapshot()
        except Exception as exc:
            logger.warning(
                "Macro provider '%s' failed (%s); using neutral macro snapshot",
                self._macro.provider_name(), exc,
            )
            return NEUTRAL_MACRO

    def _pipeline(
        self,
        ticker: str,
        request: ScreenRequest,
        macro: MacroSnapshot,
        cancel: threading.Event,
    ) -> tuple[Disposition, ScreenResult | None]:
        if not ticker:
            return Disposition.SKIPPED_BLANK, None

        self._check_cancel(cancel)
        try:
            fundamentals = self._fundamentals.fetch_fundamentals(ticker)
        except Exception as exc:
            logger.warning("Fundamentals failed for %s: %s", ticker, exc)
            return Disposition.FAILED_FUNDAMENTALS, None
        finally:
            if self._fundamentals.rate_limited and self._fundamentals.request_delay > 0:
                # Event.wait returns early when the run is cancelled.
                cancel.wait(self._fundamentals.request_delay)

        if fundamentals is None:
            logger.debug("No fundamentals for %s", ticker)
            return Disposition.SKIPPED_NO_FUNDAMENTALS, None

        self._check_cancel(cancel)
        try:
            prices = self._prices.fetch_daily(ticker, request.start, request.end)
        except Exception as exc:
            logger.warning("Prices failed for %s: %s", ticker, exc)
            return Disposition.FAILED_PRICES, None

        if prices is None or prices.empty:
            logger.debug("No prices for %s in %s..%s", ticker, request.start, request.end)
            return Disposition.SKIPPED_NO_PRICES, None

        # Filters run before any optional (possibly metered) work.
        if request.filters is not None and not request.filters.matches(fundamentals, prices):
            return Disposition.SKIPPED_FILTERED_OUT, None

        self._check_cancel(cancel)
        options = self._fetch_options(ticker)

        score = scoring.compute(fundamentals, prices, options, macro, request.weights)
        result = ScreenResult(
            ticker=ticker,
            fundamentals=fundamentals,
            prices=prices,
            score=score,
            macro=macro,
            options=options,
        )
        return Disposition.INCLUDED, result

    def _fetch_options(self, ticker: str) -> OptionsSnapshot | None:
        """Best-effort options snapshot; any failure means "no options"."""
        try:
            return self._options.fetch_snapshot(ticker)
        except Exception as exc:
            logger.debug("Options unavailable for %s: %s", ticker, exc)
            return None

    @staticmethod
    def _check_cancel(cancel: threading.Event) -> None:
        if cancel.is_set():
            raise _Cancelled()
