"""
Configuration Search
====================
Random search over moving-average pairs:
- Sample an IndicatorConfig per episode
- Reset the broker account and the evaluator buffers
- Replay one symbol's historical bars through the Evaluator
- Liquidate any residual long at the last close, read the gain
- Keep the top-N configurations and optionally persist every run

Episodes run strictly one after another; each depends on the reset
performed at its start.
"""

import random
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .audit_logger import AuditLogger
from .bar_buffer import Bar
from .broker import BrokerFacade
from .evaluator import Evaluator
from .exceptions import BrokerError, GainUnavailable, PersistenceFailure
from .models import IndicatorConfig, RunResult
from .results_store import ResultsStore

logger = logging.getLogger(__name__)


class BestConfigsRanking:
    """
    Top-N configurations keyed by truncated integer gain.

    Two runs whose gains truncate to the same integer share one key: the
    later run replaces the earlier one.
    """

    def __init__(self, top_n: int):
        if top_n < 1:
            raise ValueError(f"top_n must be at least 1 (got {top_n})")
        self.top_n = top_n
        self._entries: Dict[int, IndicatorConfig] = {}

    def insert(self, gain: float, config: IndicatorConfig):
        """Insert, then evict the smallest keys until at most top_n remain"""
        self._entries[int(gain)] = config
        while len(self._entries) > self.top_n:
            del self._entries[min(self._entries)]

    def items(self) -> List[Tuple[int, IndicatorConfig]]:
        """(gain_key, config) pairs, best first"""
        return sorted(self._entries.items(), key=lambda kv: kv[0], reverse=True)

    def best(self) -> Optional[Tuple[int, IndicatorConfig]]:
        if not self._entries:
            return None
        key = max(self._entries)
        return key, self._entries[key]

    def __contains__(self, gain_key: int) -> bool:
        return gain_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class EpisodeOutcome:
    """What happened in one search episode"""
    iteration: int
    config: IndicatorConfig
    orders: int = 0
    gain: Optional[float] = None
    persisted: bool = False
    skipped_reason: Optional[str] = None


@dataclass
class SearchSummary:
    episodes: List[EpisodeOutcome] = field(default_factory=list)
    ranking: Optional[BestConfigsRanking] = None

    @property
    def completed(self) -> int:
        return len([e for e in self.episodes if e.gain is not None])

    @property
    def skipped(self) -> int:
        return len(self.episodes) - self.completed


class ConfigSearchLoop:
    """
    Outer controller for repeated evaluation episodes.

    Features:
    - Seedable config sampling for reproducible searches
    - Broker reset + fixed starting deposit per episode
    - Bounded best-config ranking
    - Contained failures (gain, persistence, reset) per episode
    """

    def __init__(
        self,
        evaluator: Evaluator,
        broker: BrokerFacade,
        symbol: str,
        eval_iterations: int,
        top_n: int,
        starting_cash: float = 100_000.0,
        store: Optional[ResultsStore] = None,
        rng: Optional[random.Random] = None,
        audit: Optional[AuditLogger] = None,
        show_progress: bool = False
    ):
        """
        Initialize ConfigSearchLoop.

        Args:
            evaluator: Evaluator to drive (its config is replaced per episode)
            broker: Resettable broker shared with the evaluator
            symbol: Symbol whose history is replayed
            eval_iterations: Number of episodes
            top_n: Size of the best-config ranking
            starting_cash: Cash deposited at the start of each episode
            store: Results store (None = persistence disabled)
            rng: Random source for sampling (seed it for reproducibility)
            audit: Optional audit trail
            show_progress: Show a tqdm progress bar
        """
        self.evaluator = evaluator
        self.broker = broker
        self.symbol = symbol
        self.eval_iterations = eval_iterations
        self.starting_cash = starting_cash
        self.store = store
        self.rng = rng or random.Random()
        self.audit = audit
        self.show_progress = show_progress
        self.ranking = BestConfigsRanking(top_n)

        logger.info(
            f"[OK] ConfigSearchLoop initialized ({symbol}, {eval_iterations} iterations, "
            f"top {top_n}, persistence {'on' if store else 'off'})"
        )

    def run(self, bars: Sequence[Bar]) -> SearchSummary:
        """
        Run every episode over the same historical bars.

        Args:
            bars: Historical bars for self.symbol, oldest first

        Returns:
            SearchSummary with per-episode outcomes and the final ranking
        """
        summary = SearchSummary(ranking=self.ranking)

        logger.info("=" * 50)
        logger.info(f"CONFIG SEARCH: {self.eval_iterations} episodes over {len(bars)} bars of {self.symbol}")
        logger.info("=" * 50)

        iterations = range(self.eval_iterations)
        with tqdm(total=self.eval_iterations, desc="Searching configs", unit="episode",
                  disable=not self.show_progress) as pbar:
            for i in iterations:
                outcome = self.run_episode(i, bars)
                summary.episodes.append(outcome)
                pbar.update(1)
                if outcome.gain is not None:
                    pbar.set_postfix({'config': str(outcome.config), 'gain': f"{outcome.gain:,.2f}"})

        best = self.ranking.best()
        logger.info(f"Search complete: {summary.completed} episodes ranked, {summary.skipped} skipped")
        if best:
            logger.info(f"Best: {best[1]} with gain {best[0]:,}")

        return summary

    def run_episode(self, iteration: int, bars: Sequence[Bar]) -> EpisodeOutcome:
        """Run a single episode; failures are logged and reported in the outcome"""
        config = IndicatorConfig.sample(self.rng)
        outcome = EpisodeOutcome(iteration=iteration, config=config)
        logger.info(f"--- Episode #{iteration} | {config} ---")

        try:
            self._reset(config)
        except BrokerError as e:
            logger.error(f"Episode {iteration} ({self.symbol}): reset failed, skipping: {e}")
            outcome.skipped_reason = f"reset failed: {e}"
            self._audit_episode(outcome)
            return outcome

        last_close = None
        for bar in bars:
            if self.evaluator.on_bar(bar) is not None:
                outcome.orders += 1
            last_close = bar.close

        if last_close is not None:
            self._liquidate(iteration, last_close)

        try:
            outcome.gain = self._read_gain()
        except GainUnavailable as e:
            logger.error(f"Episode {iteration} ({self.symbol}, {config}): {e}")
            outcome.skipped_reason = str(e)
            self._audit_episode(outcome)
            return outcome

        self.ranking.insert(outcome.gain, config)
        logger.info(f"Episode {iteration}: {config} gain {outcome.gain:,.2f} ({outcome.orders} orders)")
        self._audit_episode(outcome)

        if self.store is not None:
            try:
                self._persist(config, outcome.gain)
                outcome.persisted = True
            except PersistenceFailure as e:
                logger.error(f"Episode {iteration} ({self.symbol}): result not persisted: {e}")

        return outcome

    def _reset(self, config: IndicatorConfig):
        self.evaluator.reset(config)
        self.broker.reset_cash()
        self.broker.reset_stock(self.symbol)
        self.broker.deposit(self.starting_cash)

    def _liquidate(self, iteration: int, last_close: float):
        """Sell a residual long position in full at the last close"""
        try:
            position = self.broker.get_position(self.symbol)
        except BrokerError as e:
            logger.warning(f"Episode {iteration} ({self.symbol}): could not read final position: {e}")
            return

        if position > 0:
            logger.info(f"Liquidating {position} {self.symbol} @ ${last_close:.2f}")
            result = self.broker.sell(self.symbol, position, last_close)
            if self.audit:
                self.audit.log_order(result, 'end of replay liquidation')

    def _read_gain(self) -> float:
        try:
            return self.broker.get_gain()
        except BrokerError as e:
            raise GainUnavailable(f"gain unavailable: {e}") from e

    def _persist(self, config: IndicatorConfig, gain: float):
        self.store.create(RunResult(config=config, symbol=self.symbol, gain=gain))

    def _audit_episode(self, outcome: EpisodeOutcome):
        if self.audit:
            self.audit.log_episode(outcome.iteration, self.symbol, outcome.config, outcome.gain)
