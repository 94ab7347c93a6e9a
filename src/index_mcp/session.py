"""Assessment session: current snapshot, current analysis, busy flag.

One refresh cycle is in flight at a time. A trigger that arrives while a
cycle runs is ignored (full refresh) or folded into the running cycle
(risk-preference change), never overlapped.
"""

import logging
from datetime import datetime
from typing import Any

from index_mcp.config import Settings
from index_mcp.data.cache import HistoryCache
from index_mcp.data.narrative import NarrativeProvider
from index_mcp.data.providers import MarketDataProvider
from index_mcp.models import AnalysisResult, MarketSnapshot, RiskPreference
from index_mcp.tools.scoring import assess
from index_mcp.tools.snapshot import fetch_snapshot
from index_mcp.utils.provenance import fingerprint

logger = logging.getLogger(__name__)


class AssessmentSession:
    """
    Holds the latest snapshot and analysis and runs refresh cycles.

    Collaborators are injected; their lifecycle belongs to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        market_provider: MarketDataProvider,
        narrator: NarrativeProvider | None = None,
        history_cache: HistoryCache | None = None,
    ):
        self.settings = settings
        self._provider = market_provider
        self._narrator = narrator
        self._history_cache = history_cache

        self.risk: RiskPreference = settings.default_risk
        self.snapshot: MarketSnapshot | None = None
        self.snapshot_id: str | None = None
        self.history_uri: str | None = None
        self.analysis: AnalysisResult | None = None
        self.is_loading = False
        self.last_refreshed_at: datetime | None = None
        self.last_error: str | None = None

    async def refresh(self) -> bool:
        """
        Full cycle: fetch, assemble, score.

        Returns:
            False if a cycle was already in flight (trigger ignored), else True

        Raises:
            ConfigurationError: If a required credential is missing (checked
                before any fetch; the cycle does not start)
        """
        if self.is_loading:
            logger.info("Refresh requested while a cycle is in flight; ignoring")
            return False

        self.settings.require_credentials()

        self.is_loading = True
        self.analysis = None
        self.last_error = None
        try:
            snapshot = await fetch_snapshot(
                self._provider,
                timeout=self.settings.provider_timeout_seconds,
                history_length=self.settings.history_length,
                seed=self.settings.history_seed,
                symbol=self.settings.index_symbol,
                preferred_source=self.settings.preferred_source,
            )
            self._set_snapshot(snapshot)
            await self._score_until_current()
            self.last_refreshed_at = datetime.now()
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.exception(f"Refresh cycle failed: {self.last_error}")
        finally:
            self.is_loading = False
        return True

    async def set_risk_preference(self, risk: RiskPreference | str) -> AnalysisResult | None:
        """
        Change the risk preference and re-score the current snapshot.

        No re-fetch. The previous analysis stays visible until the new one is
        ready. If a cycle is in flight, that cycle scores with the new
        preference instead.

        Raises:
            ValueError: If ``risk`` is not a valid preference name
        """
        risk = RiskPreference.parse(risk)
        changed = risk is not self.risk
        self.risk = risk

        if self.snapshot is None or self.is_loading:
            return self.analysis
        if not changed and self.analysis is not None:
            return self.analysis

        await self.rescore()
        return self.analysis

    async def rescore(self) -> bool:
        """Re-score the current snapshot without fetching. False if busy or empty."""
        if self.is_loading or self.snapshot is None:
            return False

        self.is_loading = True
        try:
            await self._score_until_current()
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.exception(f"Re-score failed: {self.last_error}")
        finally:
            self.is_loading = False
        return True

    async def _score_until_current(self) -> None:
        # The preference may change while the narrator is awaited; score again
        # until the result matches the latest preference.
        if self.snapshot is None:
            return
        while True:
            risk = self.risk
            result = await assess(self.snapshot, risk, self._narrator)
            if risk is self.risk:
                self.analysis = result
                return
            logger.info(f"Risk preference changed to {self.risk.value} mid-cycle; re-scoring")

    def _set_snapshot(self, snapshot: MarketSnapshot) -> None:
        self.snapshot = snapshot
        self.snapshot_id = fingerprint(snapshot.to_dict())
        self.history_uri = None

        if self._history_cache is None:
            return
        try:
            self.history_uri = self._history_cache.store(self.snapshot_id, snapshot)
        except Exception as e:
            logger.warning(f"History cache store failed: {type(e).__name__}: {e}")

    def status(self) -> dict[str, Any]:
        return {
            "is_loading": self.is_loading,
            "risk_preference": self.risk.value,
            "has_snapshot": self.snapshot is not None,
            "has_analysis": self.analysis is not None,
            "snapshot_id": self.snapshot_id,
            "history_uri": self.history_uri,
            "last_refreshed_at": (
                self.last_refreshed_at.isoformat(timespec="seconds")
                if self.last_refreshed_at
                else None
            ),
            "last_error": self.last_error,
        }
