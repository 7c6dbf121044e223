"""Pin Bar strategy.

Entry logic (long; short is the mirror image):
1. No open position and the bar falls inside the allowed trading hours
2. Previous bar closed above the base EMA (trend filter)
3. Previous bar is a bullish pin bar (long lower wick, small body)
4. Previous bar touched or came near one of the configured EMAs
5. Current bar closes above the previous bar's high (breakout confirmation)
6. ADX filter, when min_adx is set and no low-ADX reward ratio is configured

Stop-loss sits beyond the pin bar's wick end, offset by a multiple of ATR.
Take-profit is risk times the reward ratio, which drops to
low_adx_risk_reward_ratio in low-ADX markets.

Reads the indicators produced by engine.indicators.IndicatorCalculator.
"""

from decimal import Decimal

from config.schema import StrategyConfig
from engine.models import Candle, TradeDirection
from strategies.base.strategy_base import StrategyBase


class PinBarStrategy(StrategyBase):
    def __init__(self, config: StrategyConfig):
        super().__init__(config)
        self.validate_config()

    def can_open_long(self, current: Candle, previous: Candle, has_open_position: bool) -> bool:
        return self._can_open(current, previous, has_open_position, bullish=True)

    def can_open_short(self, current: Candle, previous: Candle, has_open_position: bool) -> bool:
        return self._can_open(current, previous, has_open_position, bullish=False)

    def _can_open(self, current: Candle, previous: Candle, has_open_position: bool, bullish: bool) -> bool:
        if has_open_position:
            return False
        if not self.is_valid_trading_time(current):
            return False

        base_ema = previous.ema(self.config.base_ema)
        if base_ema == 0:
            return False  # EMA not ready

        if bullish and previous.close <= base_ema:
            return False
        if not bullish and previous.close >= base_ema:
            return False

        if not self.is_pin_bar(previous, bullish):
            return False
        if not self.near_any_ema(previous, bullish):
            return False

        # Breakout confirmation
        if bullish and current.close <= previous.high:
            return False
        if not bullish and current.close >= previous.low:
            return False

        cfg = self.config
        if cfg.min_adx > 0 and cfg.low_adx_risk_reward_ratio <= 0 and previous.adx < cfg.min_adx:
            return False

        return True

    def is_pin_bar(self, candle: Candle, bullish: bool) -> bool:
        """Shape test for a bullish (long lower wick) or bearish pin bar."""
        cfg = self.config
        total = candle.total_range

        if total < cfg.threshold:
            return False

        longer_wick = candle.lower_wick if bullish else candle.upper_wick
        shorter_wick = candle.upper_wick if bullish else candle.lower_wick

        if candle.atr > 0 and longer_wick < cfg.min_lower_wick_atr_ratio * candle.atr:
            return False

        if total > 0:
            if candle.body_size / total * 100 > cfg.max_body_percentage:
                return False
            if longer_wick / total * 100 < cfg.min_longer_wick_percentage:
                return False
            if shorter_wick / total * 100 > cfg.max_shorter_wick_percentage:
                return False

        if cfg.require_pin_bar_direction_match:
            if bullish and candle.is_bearish:
                return False
            if not bullish and candle.is_bullish:
                return False

        return True

    def near_any_ema(self, candle: Candle, bullish: bool) -> bool:
        """Body on the trend side of an EMA while the wick reaches it."""
        threshold = self.config.near_ema_threshold
        for period in self.config.ema_list:
            ema_value = candle.ema(period)
            if ema_value == 0:
                continue

            if bullish:
                body_low = min(candle.open, candle.close)
                if body_low > ema_value and (abs(candle.low - ema_value) <= threshold or candle.low < ema_value):
                    return True
            else:
                body_high = max(candle.open, candle.close)
                if body_high < ema_value and (abs(candle.high - ema_value) <= threshold or candle.high > ema_value):
                    return True

        return False

    def is_valid_trading_time(self, candle: Candle) -> bool:
        hour = candle.time.hour
        if hour in self.config.no_trade_hours:
            return False
        if self.config.no_trading_hours_limit:
            return True
        return self.config.start_trading_hour <= hour <= self.config.end_trading_hour

    def get_risk_reward_ratio(self, candle: Candle) -> Decimal:
        """Reward ratio for a trade signalled by ``candle``."""
        cfg = self.config
        if cfg.min_adx <= 0 or cfg.low_adx_risk_reward_ratio <= 0:
            return cfg.risk_reward_ratio
        if candle.adx < cfg.min_adx:
            return cfg.low_adx_risk_reward_ratio
        return cfg.risk_reward_ratio

    def calculate_stop_loss(self, reference_bar: Candle, direction: TradeDirection) -> Decimal:
        if self.config.stop_loss_strategy == "pinbar_end_plus_atr":
            offset = self.config.stop_loss_atr_ratio * reference_bar.atr
            if direction == TradeDirection.LONG:
                return reference_bar.low - offset
            return reference_bar.high + offset
        raise NotImplementedError(f"Stop loss strategy {self.config.stop_loss_strategy} is not implemented")

    def calculate_take_profit(
        self,
        entry_price: Decimal,
        stop_loss: Decimal,
        direction: TradeDirection,
        reference_bar: Candle
    ) -> Decimal:
        risk = abs(entry_price - stop_loss)
        reward = risk * self.get_risk_reward_ratio(reference_bar)
        if direction == TradeDirection.LONG:
            return entry_price + reward
        return entry_price - reward
