"""
ORACLE TRADER — AI-Gated Trade Contract
Swap entry points that consult the oracle gate synchronously. Every check
runs before any balance moves; a failed check reverts the whole call.
"""
from typing import Optional, Tuple

from oracle_trader.chain.ledger import NATIVE_TOKEN, ZERO_ADDRESS, Ledger
from oracle_trader.chain.oracle_gate import PriceOracleGate
from oracle_trader.config.settings import OracleSettings, get_settings
from oracle_trader.utils.exceptions import (
    AIPredictionInvalid,
    ContractRevert,
    TradingPaused,
    Unauthorized,
)
from oracle_trader.utils.logger import get_logger

logger = get_logger("trader_contract")


class MockRouter:
    """Constant 1:1 swap router holding its own liquidity on the ledger."""

    def __init__(self, ledger: Ledger, address: str = "0x00000000000000000000000000000000000000d1"):
        self.ledger = ledger
        self.address = address

    def get_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        return amount_in

    def swap(self, caller: str, token_in: str, token_out: str, amount_in: int, amount_out: int) -> None:
        self.ledger.transfer(token_in, caller, self.address, amount_in)
        self.ledger.transfer(token_out, self.address, caller, amount_out)


class AIPoweredTrader:
    """Ownable, pausable trade contract model."""

    def __init__(
        self,
        ledger: Ledger,
        oracle: PriceOracleGate,
        owner: str,
        router: Optional[MockRouter] = None,
        address: str = "0x00000000000000000000000000000000000000e1",
        settings: Optional[OracleSettings] = None,
    ):
        self.settings = settings or get_settings().oracle
        self.ledger = ledger
        self.oracle = oracle
        self.owner = owner
        self.router = router or MockRouter(ledger)
        self.address = address
        self.paused = False

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise Unauthorized(caller)

    # ─── Admin ──────────────────────────────────────────────────

    def pause(self, caller: str) -> None:
        self._only_owner(caller)
        if self.paused:
            raise ContractRevert("Pausable: paused")
        self.paused = True
        self.ledger.emit(self.address, "Paused", account=caller)

    def unpause(self, caller: str) -> None:
        self._only_owner(caller)
        if not self.paused:
            raise ContractRevert("Pausable: not paused")
        self.paused = False
        self.ledger.emit(self.address, "Unpaused", account=caller)

    def emergency_withdraw(self, caller: str, token: str, recipient: str) -> int:
        """Move the contract's whole balance of `token` to `recipient`."""
        self._only_owner(caller)
        if recipient == ZERO_ADDRESS:
            raise ContractRevert("Invalid recipient")
        amount = self.ledger.balance_of(token, self.address)
        if amount == 0:
            raise ContractRevert("Nothing to withdraw")
        self.ledger.transfer(token, self.address, recipient, amount)
        self.ledger.emit(self.address, "EmergencyWithdraw", token=token, amount=amount, recipient=recipient)
        logger.warning("emergency_withdraw", token=token, amount=amount, recipient=recipient)
        return amount

    def get_ai_prediction_status(self) -> Tuple[bool, int]:
        return self.oracle.is_prediction_valid(), self.oracle.get_prediction().confidence

    # ─── Trades ─────────────────────────────────────────────────

    def _validate_trade(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        deadline: int,
        native_in: bool,
        native_out: bool,
    ) -> None:
        if self.paused:
            raise TradingPaused()
        if amount_in <= 0:
            raise ContractRevert("Must send native value" if native_in else "Amount must be greater than 0")

        erc20_legs = [
            token for token, native in ((token_in, native_in), (token_out, native_out)) if not native
        ]
        if any(not token or token == ZERO_ADDRESS for token in erc20_legs):
            raise ContractRevert("Invalid token address")
        if token_in == token_out:
            raise ContractRevert("Tokens must be different")

        now = self.ledger.now()
        if deadline <= now:
            raise ContractRevert("Deadline must be in future")
        if deadline > now + self.settings.trade_deadline_buffer_seconds:
            raise ContractRevert("Deadline too far")

        if not self.oracle.is_prediction_valid():
            confidence = self.oracle.get_prediction().confidence
            logger.warning("trade_rejected", confidence=confidence, gate_state=self.oracle.state().value)
            raise AIPredictionInvalid(confidence)

    def _execute(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        amount_out_min: int,
        deadline: int,
        native_in: bool = False,
        native_out: bool = False,
    ) -> int:
        self._validate_trade(token_in, token_out, amount_in, deadline, native_in, native_out)

        amount_out = self.router.get_amount_out(token_in, token_out, amount_in)
        if amount_out < amount_out_min:
            raise ContractRevert("Insufficient output amount")
        self.ledger.require_balance(token_in, caller, amount_in)
        self.ledger.require_balance(token_out, self.router.address, amount_out)

        self.router.swap(caller, token_in, token_out, amount_in, amount_out)

        prediction = self.oracle.get_prediction()
        self.ledger.emit(
            self.address, "TradeExecuted",
            user=caller,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            ai_confidence=prediction.confidence,
            ai_predicted_price=prediction.price,
        )
        logger.info(
            "trade_executed",
            user=caller, token_in=token_in, token_out=token_out,
            amount_in=amount_in, amount_out=amount_out, confidence=prediction.confidence,
        )
        return amount_out

    def trade_exact_native_for_tokens(
        self, caller: str, token_out: str, amount_out_min: int, deadline: int, value: int
    ) -> int:
        return self._execute(caller, NATIVE_TOKEN, token_out, value, amount_out_min, deadline, native_in=True)

    def trade_exact_tokens_for_native(
        self, caller: str, token_in: str, amount_in: int, amount_out_min: int, deadline: int
    ) -> int:
        return self._execute(
            caller, token_in, NATIVE_TOKEN, amount_in, amount_out_min, deadline, native_out=True
        )

    def trade_exact_tokens_for_tokens(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        amount_out_min: int,
        deadline: int,
    ) -> int:
        return self._execute(caller, token_in, token_out, amount_in, amount_out_min, deadline)
