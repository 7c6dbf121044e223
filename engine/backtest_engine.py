"""Bar-by-bar backtesting engine.

The engine replays a sorted candle sequence against a strategy oracle:
- at most one position is open at any time
- entries fill at the close of the bar on which the strategy signals,
  with the previous bar as the stop-loss reference
- exits are detected intrabar from high/low; when one bar touches both the
  stop-loss and the take-profit the exit is recorded as a stop-loss
- a position still open after the last bar is closed at its close (MANUAL)

Position sizing and the risk-reduction ladder live in RiskManager; the trade
list is summarized by metrics.metrics once the loop ends.

All mutable state of a run lives in a RunContext created by run(), so one
BacktestEngine may run any number of backtests, including concurrently.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional
import logging

from config.schema import AccountSettings, StrategyConfig
from engine.indicators import IndicatorCalculator
from engine.models import BacktestResult, Candle, Trade, TradeCloseReason, TradeDirection
from engine.risk_manager import MIN_RISK_AMOUNT, RiskManager
from metrics.metrics import calculate_backtest_metrics
from strategies.base import StrategyBase


class InsufficientDataError(ValueError):
    """Raised when a backtest is given fewer than two candles."""


@dataclass
class RunContext:
    """Mutable state of a single backtest run.

    Attributes:
        risk: Equity and risk ladder
        trades: Closed trades in close order
        open_trade: Currently open trade, if any
        pause_until: Date before which no new entries are taken (legacy pause)
        legacy_consecutive_losses: Losing streak counter of the legacy pause rule
        next_trade_id: Id for the next opened trade
    """
    risk: RiskManager
    trades: List[Trade] = field(default_factory=list)
    open_trade: Optional[Trade] = None
    pause_until: Optional[date] = None
    legacy_consecutive_losses: int = 0
    next_trade_id: int = 1


class BacktestEngine:
    """Backtest engine for one strategy.

    Holds only the strategy and the indicator preprocessor; each call to
    run() works on fresh state.
    """

    def __init__(self, strategy: StrategyBase, preprocessor=None):
        """
        Args:
            strategy: Strategy oracle
            preprocessor: Object with calculate_indicators(candles, config);
                defaults to IndicatorCalculator
        """
        self.strategy = strategy
        self.preprocessor = preprocessor or IndicatorCalculator()
        self.logger = logging.getLogger(__name__)

    def run(
        self,
        candles: List[Candle],
        config: StrategyConfig,
        account_settings: AccountSettings
    ) -> BacktestResult:
        """
        Run a backtest.

        Args:
            candles: At least two candles, strictly ascending by time
            config: Strategy configuration (contract size, ladder settings)
            account_settings: Initial capital and base risk per trade

        Returns:
            BacktestResult with trades, metrics and equity curve

        Raises:
            InsufficientDataError: fewer than two candles
        """
        if len(candles) < 2:
            raise InsufficientDataError(
                f"Backtest needs at least 2 candles, got {len(candles)}"
            )

        self.preprocessor.calculate_indicators(candles, config)

        ctx = RunContext(
            risk=RiskManager(
                initial_capital=account_settings.initial_capital,
                base_risk_percent=account_settings.max_loss_per_trade_percent,
                contract_size=config.contract_size,
                max_consecutive_losses=config.max_consecutive_losses,
            )
        )

        self.logger.info(
            f"Backtest start: {config.symbol or '?'} {len(candles)} candles "
            f"{candles[0].time} -> {candles[-1].time}, capital {account_settings.initial_capital}"
        )

        for i in range(1, len(candles)):
            current = candles[i]
            previous = candles[i - 1]

            if ctx.open_trade is not None:
                close_reason = self.check_close(current, ctx.open_trade)
                if close_reason is not None:
                    self._close_position(ctx, current, close_reason, config)
                # One action per bar: a bar that closed a trade opens nothing.
                continue

            self._try_open(ctx, current, previous)

        if ctx.open_trade is not None:
            self._close_position(ctx, candles[-1], TradeCloseReason.MANUAL, config)

        result = BacktestResult(
            start_time=candles[0].time,
            end_time=candles[-1].time,
            trades=ctx.trades,
            strategy_name=getattr(self.strategy, 'name', '') or config.strategy_name,
            symbol=config.symbol,
            initial_capital=ctx.risk.initial_capital,
            final_equity=ctx.risk.current_equity,
        )
        calculate_backtest_metrics(result)

        self.logger.info(
            f"Backtest complete: {len(ctx.trades)} trades, total P&L "
            f"{result.overall_metrics.total_profit}, final equity {result.final_equity}"
        )
        return result

    def _try_open(self, ctx: RunContext, current: Candle, previous: Candle) -> None:
        if self._is_paused(ctx, current):
            return

        raw_risk = ctx.risk.calculate_raw_risk_amount()
        if raw_risk < MIN_RISK_AMOUNT:
            self.logger.debug(
                f"{current.time}: risk amount {raw_risk} below {MIN_RISK_AMOUNT}, entry skipped"
            )
            return

        if self.strategy.can_open_long(current, previous, False):
            self._open_position(ctx, current, previous, TradeDirection.LONG)
        elif self.strategy.can_open_short(current, previous, False):
            self._open_position(ctx, current, previous, TradeDirection.SHORT)

    def _open_position(
        self,
        ctx: RunContext,
        current: Candle,
        reference_bar: Candle,
        direction: TradeDirection
    ) -> None:
        stop_loss = self.strategy.calculate_stop_loss(reference_bar, direction)
        entry_price = current.close
        take_profit = self.strategy.calculate_take_profit(entry_price, stop_loss, direction, reference_bar)

        ctx.open_trade = Trade(
            trade_id=ctx.next_trade_id,
            direction=direction,
            open_time=current.time,
            open_price=entry_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        ctx.next_trade_id += 1
        self.logger.debug(
            f"{current.time}: open {direction.value} #{ctx.open_trade.trade_id} @ {entry_price} "
            f"SL {stop_loss} TP {take_profit}"
        )

    @staticmethod
    def check_close(candle: Candle, trade: Trade) -> Optional[TradeCloseReason]:
        """
        Intrabar exit detection. Stop-loss is always checked first.

        Returns:
            Close reason, or None if neither level was touched
        """
        if trade.direction == TradeDirection.LONG:
            if candle.low <= trade.stop_loss:
                return TradeCloseReason.STOP_LOSS
            if candle.high >= trade.take_profit:
                return TradeCloseReason.TAKE_PROFIT
        else:
            if candle.high >= trade.stop_loss:
                return TradeCloseReason.STOP_LOSS
            if candle.low <= trade.take_profit:
                return TradeCloseReason.TAKE_PROFIT
        return None

    @staticmethod
    def close_price_for(trade: Trade, candle: Candle, reason: TradeCloseReason):
        """Exit price implied by the close reason."""
        if reason == TradeCloseReason.STOP_LOSS:
            return trade.stop_loss
        if reason == TradeCloseReason.TAKE_PROFIT:
            return trade.take_profit
        return candle.close

    def _close_position(
        self,
        ctx: RunContext,
        candle: Candle,
        reason: TradeCloseReason,
        config: StrategyConfig
    ) -> None:
        trade = ctx.open_trade
        trade.close_time = candle.time
        trade.close_reason = reason
        trade.close_price = self.close_price_for(trade, candle, reason)

        ctx.risk.settle(trade)
        self._apply_loss_policy(ctx, trade, config)

        ctx.trades.append(trade)
        ctx.open_trade = None
        self.logger.debug(
            f"{candle.time}: close #{trade.trade_id} {reason.value} @ {trade.close_price} "
            f"P&L {trade.profit_loss} equity {ctx.risk.current_equity}"
        )

    def _apply_loss_policy(self, ctx: RunContext, trade: Trade, config: StrategyConfig) -> None:
        if config.max_consecutive_losses > 0:
            ctx.risk.update_ladder(trade)
        else:
            self._apply_legacy_pause(ctx, trade, config)

    def _apply_legacy_pause(self, ctx: RunContext, trade: Trade, config: StrategyConfig) -> None:
        """Legacy pause-after-losses rule.

        Dormant: it is only reached when max_consecutive_losses <= 0, and it
        returns immediately under that same condition, so pause_until is
        never set. Kept as-is until the intended behavior is confirmed.
        """
        if config.max_consecutive_losses <= 0:
            self.logger.debug("Legacy pause rule inactive (max_consecutive_losses <= 0)")
            return

        if trade.is_winning:
            ctx.legacy_consecutive_losses = 0
            return

        ctx.legacy_consecutive_losses += 1
        if ctx.legacy_consecutive_losses >= config.max_consecutive_losses:
            ctx.pause_until = trade.close_time.date() + timedelta(days=config.pause_days_after_losses)
            ctx.legacy_consecutive_losses = 0
            self.logger.info(f"Pausing new entries until {ctx.pause_until}")

    @staticmethod
    def _is_paused(ctx: RunContext, candle: Candle) -> bool:
        if ctx.pause_until is None:
            return False
        if candle.time.date() < ctx.pause_until:
            return True
        ctx.pause_until = None
        return False
