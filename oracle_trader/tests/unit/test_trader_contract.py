"""
ORACLE TRADER — Unit Tests for the AI-Powered Trade Contract
Every rejected trade must leave balances untouched.
"""
import pytest

from oracle_trader.chain.ledger import NATIVE_TOKEN, ZERO_ADDRESS
from oracle_trader.tests.conftest import OWNER, STRANGER
from oracle_trader.utils.exceptions import (
    AIPredictionInvalid,
    ContractRevert,
    TradingPaused,
    Unauthorized,
)

USDT = "0x00000000000000000000000000000000000000f1"
WAVAX = "0x00000000000000000000000000000000000000f2"
USER = "0x00000000000000000000000000000000000000c7"
PRICE = 25 * 10 ** 18


@pytest.fixture
def funded(ledger, trader):
    ledger.mint(USDT, USER, 1_000)
    ledger.mint(WAVAX, USER, 1_000)
    ledger.mint(NATIVE_TOKEN, USER, 1_000)
    for token in (USDT, WAVAX, NATIVE_TOKEN):
        ledger.mint(token, trader.router.address, 10_000)
    return ledger


@pytest.fixture
def valid_oracle(gate, ledger):
    gate.publish(OWNER, PRICE, 80, ledger.now() + 1800)
    return gate


def balances(ledger, holder):
    return tuple(ledger.balance_of(t, holder) for t in (USDT, WAVAX, NATIVE_TOKEN))


class TestTrades:
    def test_tokens_for_tokens(self, trader, funded, valid_oracle):
        out = trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 100, 100, funded.now() + 600)
        assert out == 100
        assert balances(funded, USER) == (900, 1_100, 1_000)
        event = funded.events_named("TradeExecuted")[-1]
        assert event.args["ai_confidence"] == 80
        assert event.args["ai_predicted_price"] == PRICE

    def test_native_for_tokens(self, trader, funded, valid_oracle):
        trader.trade_exact_native_for_tokens(USER, WAVAX, 50, funded.now() + 600, value=50)
        assert balances(funded, USER) == (1_000, 1_050, 950)

    def test_tokens_for_native(self, trader, funded, valid_oracle):
        trader.trade_exact_tokens_for_native(USER, USDT, 10, 10, funded.now() + 600)
        assert balances(funded, USER) == (990, 1_000, 1_010)

    def test_low_confidence_reverts_without_transfer(self, trader, funded, gate):
        gate.publish(OWNER, PRICE, 60, funded.now() + 1800)
        before = balances(funded, USER)
        with pytest.raises(AIPredictionInvalid) as exc:
            trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 100, 0, funded.now() + 600)
        assert exc.value.confidence == 60
        assert balances(funded, USER) == before
        assert funded.events_named("TradeExecuted") == []

    def test_expired_prediction_reverts(self, trader, funded, valid_oracle):
        funded.clock.advance(1801)
        with pytest.raises(AIPredictionInvalid):
            trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 100, 0, funded.now() + 600)

    def test_empty_oracle_reverts(self, trader, funded):
        with pytest.raises(AIPredictionInvalid) as exc:
            trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 100, 0, funded.now() + 600)
        assert exc.value.confidence == 0

    @pytest.mark.parametrize(
        "token_in, token_out, amount, deadline_offset, reason",
        [
            (USDT, WAVAX, 0, 600, "Amount must be greater than 0"),
            (ZERO_ADDRESS, WAVAX, 10, 600, "Invalid token address"),
            (USDT, USDT, 10, 600, "Tokens must be different"),
            (USDT, WAVAX, 10, 0, "Deadline must be in future"),
            (USDT, WAVAX, 10, 1201, "Deadline too far"),
        ],
    )
    def test_input_checks(self, trader, funded, valid_oracle, token_in, token_out, amount, deadline_offset, reason):
        before = balances(funded, USER)
        with pytest.raises(ContractRevert) as exc:
            trader.trade_exact_tokens_for_tokens(
                USER, token_in, token_out, amount, 0, funded.now() + deadline_offset
            )
        assert exc.value.reason == reason
        assert balances(funded, USER) == before

    def test_deadline_at_buffer_edge_allowed(self, trader, funded, valid_oracle):
        trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 10, 0, funded.now() + 1200)

    def test_native_needs_value(self, trader, funded, valid_oracle):
        with pytest.raises(ContractRevert) as exc:
            trader.trade_exact_native_for_tokens(USER, WAVAX, 0, funded.now() + 600, value=0)
        assert exc.value.reason == "Must send native value"

    def test_slippage_reverts(self, trader, funded, valid_oracle):
        with pytest.raises(ContractRevert) as exc:
            trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 100, 101, funded.now() + 600)
        assert exc.value.reason == "Insufficient output amount"

    def test_insufficient_balance_reverts(self, trader, funded, valid_oracle):
        before = balances(funded, USER)
        with pytest.raises(ContractRevert):
            trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 5_000, 0, funded.now() + 600)
        assert balances(funded, USER) == before


class TestAdmin:
    def test_pause_blocks_trades_first(self, trader, funded, valid_oracle):
        trader.pause(OWNER)
        with pytest.raises(TradingPaused):
            trader.trade_exact_tokens_for_tokens(USER, USDT, USDT, 0, 0, 0)
        trader.unpause(OWNER)
        trader.trade_exact_tokens_for_tokens(USER, USDT, WAVAX, 10, 0, funded.now() + 600)

    def test_pause_events_and_double_pause(self, trader, ledger):
        trader.pause(OWNER)
        assert ledger.events_named("Paused")[-1].args == {"account": OWNER}
        with pytest.raises(ContractRevert):
            trader.pause(OWNER)
        trader.unpause(OWNER)
        with pytest.raises(ContractRevert):
            trader.unpause(OWNER)

    def test_admin_owner_only(self, trader):
        with pytest.raises(Unauthorized):
            trader.pause(STRANGER)
        with pytest.raises(Unauthorized):
            trader.emergency_withdraw(STRANGER, USDT, STRANGER)

    def test_emergency_withdraw(self, trader, ledger):
        ledger.mint(USDT, trader.address, 500)
        assert trader.emergency_withdraw(OWNER, USDT, OWNER) == 500
        assert ledger.balance_of(USDT, OWNER) == 500
        assert ledger.events_named("EmergencyWithdraw")[-1].args["amount"] == 500

    def test_emergency_withdraw_checks(self, trader, ledger):
        with pytest.raises(ContractRevert) as exc:
            trader.emergency_withdraw(OWNER, USDT, ZERO_ADDRESS)
        assert exc.value.reason == "Invalid recipient"
        with pytest.raises(ContractRevert) as exc:
            trader.emergency_withdraw(OWNER, USDT, OWNER)
        assert exc.value.reason == "Nothing to withdraw"

    def test_prediction_status(self, trader, valid_oracle):
        assert trader.get_ai_prediction_status() == (True, 80)
