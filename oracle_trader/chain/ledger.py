"""
ORACLE TRADER — In-Process Ledger Model
Block clock, token balances and the event log shared by the oracle gate and
the trade contract. Contracts validate first and only then mutate, so a
revert never leaves partial state behind.
"""
from collections import defaultdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from oracle_trader.utils.exceptions import ContractRevert
from oracle_trader.utils.helpers import wall_clock

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
NATIVE_TOKEN = ZERO_ADDRESS


class LedgerEvent(BaseModel):
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    block_time: int
    emitter: str


class LedgerClock:
    """Integer block time. Tests move it forward with advance()."""

    def __init__(self, start: Optional[int] = None):
        self._now = int(start if start is not None else wall_clock())

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("block time cannot go backwards")
        self._now += int(seconds)
        return self._now


class Ledger:
    """Balances keyed by token address then holder address."""

    def __init__(self, clock: Optional[LedgerClock] = None):
        self.clock = clock or LedgerClock()
        self._balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.events: List[LedgerEvent] = []

    def now(self) -> int:
        return self.clock.now()

    def emit(self, emitter: str, name: str, **args: Any) -> LedgerEvent:
        event = LedgerEvent(name=name, args=args, block_time=self.now(), emitter=emitter)
        self.events.append(event)
        return event

    def events_named(self, name: str) -> List[LedgerEvent]:
        return [e for e in self.events if e.name == name]

    def balance_of(self, token: str, holder: str) -> int:
        return self._balances[token][holder]

    def mint(self, token: str, holder: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        self._balances[token][holder] += int(amount)

    def require_balance(self, token: str, holder: str, amount: int) -> None:
        if self.balance_of(token, holder) < amount:
            raise ContractRevert("insufficient balance")

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        self.require_balance(token, sender, amount)
        self._balances[token][sender] -= amount
        self._balances[token][recipient] += amount
