from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Zone(str, Enum):
    NEUTRAL = "neutral"
    HIGH = "high"      # momentum above upper threshold
    LOW = "low"        # momentum below lower threshold
    SPIKED = "spiked"  # volume spike (edge-triggered mode only)


@dataclass(slots=True)
class SymbolAlertState:
    zone: Zone = Zone.NEUTRAL
    last_value: float | None = None          # last computed metric for observability
    last_trigger_epoch: float | None = None
    alerts_fired: int = 0

    def fire(self, zone: Zone, epoch: float) -> None:
        self.zone = zone
        self.last_trigger_epoch = epoch
        self.alerts_fired += 1
