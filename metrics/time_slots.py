"""Hour-of-day analysis of backtest trades.

Groups closed trades by the UTC hour they were opened in, to spot sessions
where a strategy consistently makes or loses money.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List

from engine.models import Trade


@dataclass
class TimeSlotResult:
    """Aggregate of trades opened within one clock hour."""
    hour: int
    time_slot: str
    trade_count: int = 0
    total_profit_loss: Decimal = Decimal("0")
    win_count: int = 0

    @property
    def average_profit_loss(self) -> Decimal:
        if self.trade_count == 0:
            return Decimal("0")
        return self.total_profit_loss / self.trade_count

    @property
    def win_rate(self) -> Decimal:
        if self.trade_count == 0:
            return Decimal("0")
        return Decimal(self.win_count) / Decimal(self.trade_count) * 100


def analyze_by_hour_slots(trades: List[Trade]) -> List[TimeSlotResult]:
    """Aggregate closed trades by open hour, ordered by hour. Open trades are ignored."""
    slots = {}
    for trade in trades:
        if not trade.is_closed or trade.profit_loss is None:
            continue

        hour = trade.open_time.hour
        slot = slots.get(hour)
        if slot is None:
            slot = TimeSlotResult(hour=hour, time_slot=f"{hour:02d}:00-{(hour + 1) % 24:02d}:00")
            slots[hour] = slot

        slot.trade_count += 1
        slot.total_profit_loss += trade.profit_loss
        if trade.profit_loss > 0:
            slot.win_count += 1

    return [slots[h] for h in sorted(slots)]


def get_top_profitable_slots(trades: List[Trade], top: int = 5) -> List[TimeSlotResult]:
    slots = analyze_by_hour_slots(trades)
    return sorted(slots, key=lambda s: s.total_profit_loss, reverse=True)[:top]


def get_top_loss_slots(trades: List[Trade], top: int = 5) -> List[TimeSlotResult]:
    slots = analyze_by_hour_slots(trades)
    return sorted(slots, key=lambda s: s.total_profit_loss)[:top]


def _format_slot_table(title: str, slots: List[TimeSlotResult]) -> List[str]:
    lines = [
        "",
        title,
        "-" * 80,
        f"{'Time slot':<15} {'Trades':>8} {'Total P&L':>12} {'Avg P&L':>12} {'Win rate':>10}",
        "-" * 80,
    ]
    for slot in slots:
        lines.append(
            f"{slot.time_slot:<15} {slot.trade_count:>8} {slot.total_profit_loss:>12,.2f} "
            f"{slot.average_profit_loss:>12,.2f} {slot.win_rate:>9.2f}%"
        )
    return lines


def generate_time_slot_report(trades: List[Trade], top: int = 5) -> str:
    """Plain-text report of the most profitable and most losing hours."""
    lines = ["=" * 80, "Profit/loss by time slot", "=" * 80]
    lines += _format_slot_table(f"Most profitable slots (top {top})", get_top_profitable_slots(trades, top))
    lines += _format_slot_table(f"Most losing slots (top {top})", get_top_loss_slots(trades, top))
    return "\n".join(lines)
