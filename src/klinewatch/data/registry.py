from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator

from klinewatch.alerts.state import SymbolAlertState
from klinewatch.data.ring_buffer import RollingWindow


@dataclass(slots=True)
class SymbolSlot:
    """Everything one symbol owns for the session: its window and alert state."""
    symbol: str
    window: RollingWindow
    state: SymbolAlertState


class SymbolRegistry:
    """
    Per-symbol store of windows and alert states, keyed by symbol.

    Slots are created on first registration and live for the monitoring
    session. Each slot is handed to exactly one SymbolStream, which is the
    only writer of that slot.
    """
    def __init__(self, window_capacity: int):
        self.window_capacity = int(window_capacity)
        self._slots: Dict[str, SymbolSlot] = {}

    def register(self, symbol: str) -> SymbolSlot:
        slot = self._slots.get(symbol)
        if slot is None:
            slot = SymbolSlot(
                symbol=symbol,
                window=RollingWindow(self.window_capacity),
                state=SymbolAlertState(),
            )
            self._slots[symbol] = slot
        return slot

    def get(self, symbol: str) -> SymbolSlot | None:
        return self._slots.get(symbol)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[SymbolSlot]:
        return iter(self._slots.values())
