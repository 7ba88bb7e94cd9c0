from __future__ import annotations

import math
from typing import Optional

import structlog

from klinewatch.alerts.rules import RsiRule, VolumeSpikeRule
from klinewatch.alerts.state import SymbolAlertState, Zone
from klinewatch.data.registry import SymbolSlot
from klinewatch.indicators.momentum import compute_rsi
from klinewatch.indicators.volume import notional, spike_ratio, trailing_mean
from klinewatch.utils.types import AlertEvent, Sample

log = structlog.get_logger("evaluator")


class RsiEvaluator:
    """
    Momentum alert state machine.

    Per closed interval:
      1) push close into the symbol's window
      2) RSI over the whole window (None until period + 1 prices)
      3) decide():
           rsi > upper and zone != HIGH → emit "high", zone = HIGH
           rsi < lower and zone != LOW  → emit "low",  zone = LOW
           lower <= rsi <= upper        → zone = NEUTRAL (re-arm, no emit)
           otherwise                    → nothing
    One alert per excursion into an extreme band, no storm while RSI sits there.
    """
    def __init__(self, rule: Optional[RsiRule] = None):
        self.rule = rule or RsiRule()

    @property
    def window_capacity(self) -> int:
        return self.rule.window

    def seed_value(self, sample: Sample) -> float:
        return sample.price

    def decide(self, state: SymbolAlertState, value: Optional[float]) -> Optional[Zone]:
        """Apply one metric value; returns the zone entered if an alert fires."""
        if value is None:
            return None
        state.last_value = value
        if value > self.rule.upper:
            if state.zone is not Zone.HIGH:
                state.zone = Zone.HIGH
                return Zone.HIGH
            return None
        if value < self.rule.lower:
            if state.zone is not Zone.LOW:
                state.zone = Zone.LOW
                return Zone.LOW
            return None
        state.zone = Zone.NEUTRAL
        return None

    def observe(self, slot: SymbolSlot, sample: Sample) -> Optional[AlertEvent]:
        slot.window.push(sample.price)
        rsi = compute_rsi(slot.window.values(), self.rule.period)
        entered = self.decide(slot.state, rsi)
        log.debug("rsi_computed", symbol=slot.symbol, rsi=rsi, zone=slot.state.zone.value)
        if entered is None:
            return None

        slot.state.fire(entered, sample.ts)
        threshold = self.rule.upper if entered is Zone.HIGH else self.rule.lower
        return {
            "symbol": slot.symbol,
            "rule": self.rule.name,
            "type": entered.value,
            "zone": entered.value,
            "value": round(rsi, 4),
            "ts": sample.ts,
            "period": self.rule.period,
            "threshold": threshold,
            "message": f"{slot.symbol} RSI{self.rule.period} {rsi:.2f} "
                       f"{'above' if entered is Zone.HIGH else 'below'} {threshold:g}",
        }


class VolumeSpikeEvaluator:
    """
    Volume anomaly check on notional volume (close x volume).

    The current interval is compared against the trailing window *before* it is
    pushed, so the mean never includes the value under test. Fires when
      len(history) >= min_samples
      and current >= multiplier x mean(history)
      and current >= floor_usd
    Without edge_triggered, sustained elevated volume re-alerts every interval.
    """
    def __init__(self, rule: Optional[VolumeSpikeRule] = None):
        self.rule = rule or VolumeSpikeRule()

    @property
    def window_capacity(self) -> int:
        return self.rule.window

    def seed_value(self, sample: Sample) -> float:
        return sample.notional

    def decide(
        self,
        state: SymbolAlertState,
        current: float,
        average: Optional[float],
        history_len: int,
    ) -> bool:
        if average is None or history_len < self.rule.min_samples:
            return False
        if not (math.isfinite(current) and math.isfinite(average)):
            return False
        if average <= 0.0 and current <= 0.0:
            return False
        state.last_value = current / average if average > 0.0 else math.inf
        # compare as a product so the boundary stays inclusive under rounding
        qualifies = current >= self.rule.multiplier * average and current >= self.rule.floor_usd
        if not qualifies:
            state.zone = Zone.NEUTRAL
            return False
        if self.rule.edge_triggered and state.zone is Zone.SPIKED:
            return False
        state.zone = Zone.SPIKED
        return True

    def observe(self, slot: SymbolSlot, sample: Sample) -> Optional[AlertEvent]:
        current = notional(sample.price, sample.volume)
        history = slot.window.values()
        avg = trailing_mean(history)
        ratio = spike_ratio(history, current)
        fired = self.decide(slot.state, current, avg, history.size)

        log.info(
            "kline_closed",
            symbol=slot.symbol,
            volume_k=round(current / 1_000, 2),
            avg_k=round(avg / 1_000, 2) if avg is not None else None,
        )

        slot.window.push(current)
        if not fired:
            return None

        slot.state.fire(Zone.SPIKED, sample.ts)
        return {
            "symbol": slot.symbol,
            "rule": self.rule.name,
            "type": "spike",
            "zone": Zone.SPIKED.value,
            "value": round(ratio, 4),
            "ts": sample.ts,
            "current": current,
            "average": avg,
            "message": f"{slot.symbol} notional volume {current:,.0f} is "
                       f"{ratio:.2f}x the trailing average {avg:,.0f}",
        }
