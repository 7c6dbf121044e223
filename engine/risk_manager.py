"""Risk management for backtesting.

This module defines RiskManager, which tracks:
- current_equity: Initial capital plus every realized P&L so far
- risk_reduction_level: How many times the risk per trade has been halved
- reduction_thresholds: Equity at each halving (most recent last)
- consecutive_losses_at_current_level: Losing streak since the last ladder move

It enforces the accounting invariant:
    current_equity == initial_capital + sum(trade.profit_loss)

A RiskManager belongs to exactly one backtest run.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN
from typing import List, Optional
import logging

from engine.models import Trade, TradeDirection

logger = logging.getLogger(__name__)

# Smallest risk amount (account currency) worth trading.
MIN_RISK_AMOUNT = Decimal("10")

# Lot size used when the stop distance is zero.
MIN_LOT_SIZE = Decimal("0.01")

_PNL_QUANTUM = Decimal("0.00000001")


@dataclass
class RiskManager:
    """Position sizing and risk-reduction ladder for one backtest run.

    Attributes:
        initial_capital: Starting capital
        base_risk_percent: Risk per trade (%) before any ladder reduction
        contract_size: Units per lot
        max_consecutive_losses: Losses at one level that halve the risk (0 = off)
        current_equity: Running equity
        risk_reduction_level: Number of halvings currently in force
        reduction_thresholds: Equity recorded at each halving
        consecutive_losses_at_current_level: Current losing streak counter
    """
    initial_capital: Decimal
    base_risk_percent: Decimal
    contract_size: Decimal
    max_consecutive_losses: int = 0
    current_equity: Optional[Decimal] = None
    risk_reduction_level: int = 0
    reduction_thresholds: List[Decimal] = field(default_factory=list)
    consecutive_losses_at_current_level: int = 0

    def __post_init__(self):
        self.initial_capital = Decimal(self.initial_capital)
        self.base_risk_percent = Decimal(self.base_risk_percent)
        self.contract_size = Decimal(self.contract_size)
        if self.current_equity is None:
            self.current_equity = self.initial_capital

    @property
    def ladder_enabled(self) -> bool:
        return self.max_consecutive_losses > 0

    @property
    def effective_risk_percent(self) -> Decimal:
        """Base risk halved once per ladder level."""
        return self.base_risk_percent / (Decimal(2) ** self.risk_reduction_level)

    def calculate_raw_risk_amount(self) -> Decimal:
        """Risk amount before the floor is applied.

        The engine compares this against MIN_RISK_AMOUNT to decide whether a
        new entry is still worth taking.
        """
        return self.current_equity * self.effective_risk_percent / Decimal(100)

    def calculate_risk_amount(self) -> Decimal:
        """Risk amount used for sizing, floored at MIN_RISK_AMOUNT."""
        return max(self.calculate_raw_risk_amount(), MIN_RISK_AMOUNT)

    def calculate_lot_size(self, trade: Trade) -> Decimal:
        """Lot size that loses exactly the risk amount if the stop is hit.

        Args:
            trade: Trade being sized (open price and stop are used)

        Returns:
            Lot size, or MIN_LOT_SIZE when the stop distance is zero
        """
        stop_distance = trade.stop_loss_distance
        if stop_distance == 0:
            return MIN_LOT_SIZE
        return self.calculate_risk_amount() / (stop_distance * self.contract_size)

    def settle(self, trade: Trade) -> Decimal:
        """Compute P&L for a trade whose close price is set, and book it.

        Writes lot_size, profit_loss and return_rate_percent onto the trade
        and adds the P&L to current_equity.

        Args:
            trade: Trade with close_price already set

        Returns:
            Realized profit/loss
        """
        if trade.close_price is None:
            raise ValueError(f"Trade {trade.trade_id} has no close price to settle")

        if trade.direction == TradeDirection.LONG:
            price_difference = trade.close_price - trade.open_price
        else:
            price_difference = trade.open_price - trade.close_price

        lot_size = self.calculate_lot_size(trade)
        profit_loss = (price_difference * self.contract_size * lot_size).quantize(
            _PNL_QUANTUM, rounding=ROUND_HALF_EVEN
        )
        return_rate = (profit_loss / self.initial_capital * Decimal(100)).quantize(
            _PNL_QUANTUM, rounding=ROUND_HALF_EVEN
        )

        trade.lot_size = lot_size
        trade.profit_loss = profit_loss
        trade.return_rate_percent = return_rate

        self.current_equity += profit_loss
        return profit_loss

    def update_ladder(self, trade: Trade) -> None:
        """Move the risk-reduction ladder after a closed trade.

        Losing trade: count it; at max_consecutive_losses record the equity,
        halve the risk and restart the count.
        Winning trade: restart the count; restore one level if equity is back
        at or above the most recent threshold. Only one level per trade.
        """
        if not self.ladder_enabled:
            return

        if trade.is_winning:
            self.consecutive_losses_at_current_level = 0
            if self.risk_reduction_level > 0 and self.current_equity >= self.reduction_thresholds[-1]:
                threshold = self.reduction_thresholds.pop()
                self.risk_reduction_level -= 1
                logger.info(
                    f"Equity {self.current_equity} recovered to threshold {threshold}; "
                    f"risk restored to level {self.risk_reduction_level} "
                    f"({self.effective_risk_percent}%)"
                )
            return

        self.consecutive_losses_at_current_level += 1
        if self.consecutive_losses_at_current_level >= self.max_consecutive_losses:
            self.reduction_thresholds.append(self.current_equity)
            self.risk_reduction_level += 1
            self.consecutive_losses_at_current_level = 0
            logger.info(
                f"{self.max_consecutive_losses} consecutive losses; risk halved to level "
                f"{self.risk_reduction_level} ({self.effective_risk_percent}%), "
                f"threshold {self.current_equity}"
            )
