"""
tests/test_settlement.py

Settlement engine behaviour, end to end against the simulated router.

Every rejection path must leave the balance book byte-for-byte as it
was and the order id unconsumed. Every success must consume the id
exactly once and deliver at least min_output_amount to the recipient.

Run:
    pytest tests/test_settlement.py -v --tb=short
"""

import threading
from dataclasses import replace

import pytest

from conftest import (
    DAI,
    DAI_UNIT,
    ENGINE,
    ETH_UNIT,
    FILLER,
    FILLER_2,
    NOW,
    RECIPIENT,
    USDC,
    USDC_UNIT,
    WETH,
    exact_in_payload,
    fail_first_fsync,
    half_write_appends,
)
from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.core.exceptions import (
    InsufficientInputFunding,
    InvalidFillPayload,
    InvalidOrder,
    InvalidSignature,
    LedgerError,
    OrderAlreadyFilled,
    OrderExpired,
    RouterExecutionFailed,
    SettlementError,
    SlippageViolation,
)
from relayreactor.core.models import NATIVE_ASSET, FillPayload, cancellation_message
from relayreactor.ledger.entry import EntryKind
from relayreactor.ledger.replay_guard import ReplayGuard
from relayreactor.router.adapter import CallableRouterAdapter
from relayreactor.router.commands import (
    ADDRESS_THIS,
    MSG_SENDER,
    Command,
    RoutePlanner,
    unwrap_weth,
    v3_swap_exact_in,
    v3_swap_exact_out,
    wrap_eth,
)
from relayreactor.settlement.engine import SettlementEngine


def _assert_untouched(balances, before, replay_guard, order):
    assert balances.snapshot() == before, "Rejected settlement must not move any balance"
    assert not replay_guard.is_consumed(order.order_id)
    assert replay_guard.get_stats()["pending"] == 0


# ─────────────────────────────────────────────────────────────
# HAPPY PATH
# ─────────────────────────────────────────────────────────────

class TestSettleDirect:

    def test_dai_to_usdc_swap_delivered_to_recipient(self, engine, balances, router, make_order, replay_guard, requester_key):
        order = make_order()
        requester = requester_key.public_key_hex
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        balances.mint(DAI, requester, 100 * DAI_UNIT)
        expected = router.quote_exact_in(order.input_amount, [DAI, 500, USDC])[-1]

        record = engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert record.amount_delivered == expected
        assert record.amount_delivered >= 95 * USDC_UNIT
        assert balances.balance_of(USDC, RECIPIENT) == expected
        assert balances.balance_of(DAI, FILLER) == 0
        assert balances.balance_of(DAI, requester) == 100 * DAI_UNIT, "Filler-paid order must not touch the requester"
        assert balances.holdings(ENGINE) == {}
        assert record.swept_output == 0
        assert record.input_payer == FILLER
        assert record.swap_target == RECIPIENT
        assert replay_guard.is_consumed(order.order_id)

    def test_record_is_signed_and_persisted(self, engine, balances, make_order, replay_guard, engine_key):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        record = engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert record.verify_signature()
        assert record.settler_public_key == engine_key.public_key_hex
        entry = replay_guard.get(order.order_id)
        assert entry.kind == EntryKind.FILLED
        assert entry.payload["amount_delivered"] == str(record.amount_delivered)
        assert entry.payload["settlement_id"] == record.settlement_id

    def test_payer_is_user_pulls_from_requester(self, engine, balances, make_order, requester_key):
        order = make_order(payer_is_user=True)
        requester = requester_key.public_key_hex
        balances.mint(DAI, requester, 100 * DAI_UNIT)

        record = engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert record.input_payer == requester
        assert balances.balance_of(DAI, requester) == 0
        assert balances.holdings(FILLER) == {}
        assert balances.balance_of(USDC, RECIPIENT) == record.amount_delivered

    def test_deadline_equal_to_now_is_still_fillable(self, engine, balances, make_order):
        order = make_order(deadline=NOW + 1)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        late_engine = SettlementEngine(
            balances=engine.balances, router=engine.router,
            replay_guard=engine.replay_guard, key_manager=engine.key_manager,
            address=ENGINE, clock=lambda: NOW + 1,
        )
        record = late_engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)
        assert record.amount_delivered >= order.min_output_amount


class TestSettleCustody:

    def test_router_must_custody_output_swept_to_recipient(self, engine, balances, router, make_order):
        order = make_order(router_must_custody=True)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        expected = router.quote_exact_in(order.input_amount, [DAI, 500, USDC])[-1]

        record = engine.settle(order, exact_in_payload(order, ENGINE), FILLER)

        assert record.swap_target == ENGINE
        assert record.swept_output == expected
        assert record.amount_delivered == expected
        assert balances.balance_of(USDC, RECIPIENT) == expected
        assert balances.holdings(ENGINE) == {}

    def test_msg_sender_recipient_resolves_to_engine(self, engine, balances, router, make_order):
        order = make_order(router_must_custody=True)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        record = engine.settle(order, exact_in_payload(order, MSG_SENDER), FILLER)

        assert record.swept_output == record.amount_delivered
        assert balances.holdings(ENGINE) == {}

    def test_exact_out_refunds_unused_input_to_payer(self, engine, balances, router, make_order):
        order = make_order(router_must_custody=True)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        path = [DAI, 500, USDC]
        needed = router.quote_exact_out(95 * USDC_UNIT, path)[0]
        payload = RoutePlanner().add_command(
            Command.V3_SWAP_EXACT_OUT,
            v3_swap_exact_out(ENGINE, 95 * USDC_UNIT, order.input_amount, path),
        ).build()

        record = engine.settle(order, payload, FILLER)

        assert record.amount_delivered == 95 * USDC_UNIT
        assert record.input_refunded == order.input_amount - needed
        assert balances.balance_of(DAI, FILLER) == record.input_refunded
        assert balances.holdings(ENGINE) == {}

    def test_output_already_in_custody_is_swept_too(self, engine, balances, make_order):
        """Custody is swept whole: stray output held by the engine goes to the recipient."""
        order = make_order(router_must_custody=True)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        balances.mint(USDC, ENGINE, 7)

        record = engine.settle(order, exact_in_payload(order, ENGINE), FILLER)

        assert record.swept_output == record.amount_delivered
        assert balances.balance_of(USDC, ENGINE) == 0


class TestSettleNative:

    def test_native_input_wrapped_by_router(self, engine, balances, router, make_order, requester_key):
        requester = requester_key.public_key_hex
        order = make_order(
            input_token=NATIVE_ASSET, input_amount=ETH_UNIT,
            output_token=USDC, min_output_amount=1_900 * USDC_UNIT,
            payer_is_user=True,
        )
        balances.mint(NATIVE_ASSET, requester, ETH_UNIT)
        expected = router.quote_exact_in(ETH_UNIT, [WETH, 3000, USDC])[-1]
        payload = (
            RoutePlanner()
            .add_command(Command.WRAP_ETH, wrap_eth(ADDRESS_THIS))
            .add_command(
                Command.V3_SWAP_EXACT_IN,
                v3_swap_exact_in(RECIPIENT, ETH_UNIT, 0, [WETH, 3000, USDC], payer_is_user=False),
            )
            .build(value=ETH_UNIT)
        )

        record = engine.settle(order, payload, FILLER)

        assert record.native_value == ETH_UNIT
        assert record.amount_delivered == expected
        assert balances.balance_of(NATIVE_ASSET, requester) == 0
        assert balances.holdings(ENGINE) == {}

    def test_unforwarded_native_input_refunded(self, engine, balances, make_order, requester_key):
        requester = requester_key.public_key_hex
        order = make_order(
            input_token=NATIVE_ASSET, input_amount=2 * ETH_UNIT,
            output_token=USDC, min_output_amount=1_900 * USDC_UNIT,
            payer_is_user=True,
        )
        balances.mint(NATIVE_ASSET, requester, 2 * ETH_UNIT)
        payload = (
            RoutePlanner()
            .add_command(Command.WRAP_ETH, wrap_eth(ADDRESS_THIS))
            .add_command(
                Command.V3_SWAP_EXACT_IN,
                v3_swap_exact_in(RECIPIENT, ETH_UNIT, 0, [WETH, 3000, USDC], payer_is_user=False),
            )
            .build(value=ETH_UNIT)
        )

        record = engine.settle(order, payload, FILLER)

        assert record.input_refunded == ETH_UNIT
        assert balances.balance_of(NATIVE_ASSET, requester) == ETH_UNIT

    def test_native_output_swept_from_custody(self, engine, balances, router, make_order):
        order = make_order(
            input_token=USDC, input_amount=2_000 * USDC_UNIT,
            output_token=NATIVE_ASSET, min_output_amount=9 * ETH_UNIT // 10,
            router_must_custody=True,
        )
        balances.mint(USDC, FILLER, 2_000 * USDC_UNIT)
        expected = router.quote_exact_in(2_000 * USDC_UNIT, [USDC, 3000, WETH])[-1]
        payload = (
            RoutePlanner()
            .add_command(
                Command.V3_SWAP_EXACT_IN,
                v3_swap_exact_in(ADDRESS_THIS, 2_000 * USDC_UNIT, 0, [USDC, 3000, WETH]),
            )
            .add_command(Command.UNWRAP_WETH, unwrap_weth(MSG_SENDER))
            .build()
        )

        record = engine.settle(order, payload, FILLER)

        assert record.amount_delivered == expected
        assert balances.balance_of(NATIVE_ASSET, RECIPIENT) == expected
        assert balances.holdings(ENGINE) == {}

    def test_native_value_on_token_order_rejected(self, engine, balances, make_order, replay_guard):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        balances.mint(NATIVE_ASSET, ENGINE, ETH_UNIT)
        payload = exact_in_payload(order, RECIPIENT)
        payload = FillPayload(payload.commands, payload.inputs, value=1)
        before = balances.snapshot()

        with pytest.raises(InvalidFillPayload):
            engine.settle(order, payload, FILLER)

        _assert_untouched(balances, before, replay_guard, order)

    def test_native_value_above_input_rejected(self, engine, balances, make_order, replay_guard, requester_key):
        order = make_order(
            input_token=NATIVE_ASSET, input_amount=ETH_UNIT,
            output_token=USDC, payer_is_user=True,
        )
        balances.mint(NATIVE_ASSET, requester_key.public_key_hex, 2 * ETH_UNIT)
        before = balances.snapshot()

        with pytest.raises(InvalidFillPayload):
            engine.settle(order, FillPayload(b"", (), value=2 * ETH_UNIT), FILLER)

        _assert_untouched(balances, before, replay_guard, order)


# ─────────────────────────────────────────────────────────────
# REJECTIONS
# ─────────────────────────────────────────────────────────────

class TestSettleRejections:

    def test_replay_rejected(self, engine, balances, make_order):
        order = make_order()
        balances.mint(DAI, FILLER, 200 * DAI_UNIT)
        engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)
        before = balances.snapshot()

        with pytest.raises(OrderAlreadyFilled):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert balances.snapshot() == before

    def test_replay_rejected_for_other_filler_and_payload(self, engine, balances, make_order, replay_guard):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        balances.mint(DAI, FILLER_2, 100 * DAI_UNIT)
        engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)
        before = balances.snapshot()
        exact_out = RoutePlanner().add_command(
            Command.V3_SWAP_EXACT_OUT,
            v3_swap_exact_out(RECIPIENT, 95 * USDC_UNIT, order.input_amount, [DAI, 500, USDC]),
        ).build()

        for payload in (exact_out, exact_in_payload(order, ENGINE)):
            with pytest.raises(OrderAlreadyFilled):
                engine.settle(order, payload, FILLER_2)

        assert balances.snapshot() == before
        assert replay_guard.get_stats()["consumed"] == 1

    def test_expired_rejected(self, engine, balances, make_order, replay_guard):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        before = balances.snapshot()
        engine.clock = lambda: NOW + 3601

        with pytest.raises(OrderExpired):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        _assert_untouched(balances, before, replay_guard, order)

    def test_slippage_rolls_everything_back(self, engine, balances, make_order, replay_guard):
        order = make_order(min_output_amount=100 * USDC_UNIT)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        before = balances.snapshot()

        with pytest.raises(SlippageViolation) as exc_info:
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert exc_info.value.details["minimum"] == 100 * USDC_UNIT
        assert exc_info.value.details["delivered"] < 100 * USDC_UNIT
        _assert_untouched(balances, before, replay_guard, order)

    def test_slippage_measured_at_recipient_not_custody(self, engine, balances, make_order, replay_guard):
        """Output left with the router does not count as delivered."""
        order = make_order(router_must_custody=True)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        before = balances.snapshot()

        with pytest.raises(SlippageViolation):
            engine.settle(order, exact_in_payload(order, ADDRESS_THIS), FILLER)

        _assert_untouched(balances, before, replay_guard, order)

    def test_router_revert_rolls_back(self, engine, balances, make_order, replay_guard):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        before = balances.snapshot()
        payload = exact_in_payload(order, RECIPIENT, fee=10_000)   # no such pool

        with pytest.raises(RouterExecutionFailed) as exc_info:
            engine.settle(order, payload, FILLER)

        assert exc_info.value.details["reason"] == "PoolNotFound"
        _assert_untouched(balances, before, replay_guard, order)

    def test_partial_router_effects_rolled_back(self, balances, replay_guard, engine_key, make_order):
        balances.mint(USDC, "market-maker", 1_000 * USDC_UNIT)

        def half_done(payload, caller):
            balances.transfer(USDC, "market-maker", RECIPIENT, 96 * USDC_UNIT)
            raise RuntimeError("connection reset")

        engine = SettlementEngine(
            balances, CallableRouterAdapter(half_done), replay_guard, engine_key,
            address=ENGINE, clock=lambda: NOW,
        )
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        before = balances.snapshot()

        with pytest.raises(RouterExecutionFailed):
            engine.settle(order, FillPayload(b"", ()), FILLER)

        _assert_untouched(balances, before, replay_guard, order)

    def test_insufficient_funding(self, engine, balances, make_order, replay_guard):
        order = make_order()
        balances.mint(DAI, FILLER, 50 * DAI_UNIT)
        before = balances.snapshot()

        with pytest.raises(InsufficientInputFunding) as exc_info:
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert exc_info.value.details["payer"] == FILLER
        _assert_untouched(balances, before, replay_guard, order)

    def test_insufficient_funding_from_requester(self, engine, balances, make_order, replay_guard):
        order = make_order(payer_is_user=True)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)   # filler funds are not used

        with pytest.raises(InsufficientInputFunding):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert not replay_guard.is_consumed(order.order_id)

    def test_recipient_cannot_be_engine(self, engine, balances, make_order):
        order = make_order(recipient=ENGINE)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        with pytest.raises(InvalidOrder):
            engine.settle(order, exact_in_payload(order, ENGINE), FILLER)

    def test_ledger_write_failure_rolls_back(self, engine, balances, make_order, replay_guard, monkeypatch):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        before = balances.snapshot()

        def fail(entry):
            raise LedgerError("disk full")

        monkeypatch.setattr(replay_guard, "_append_to_ledger", fail)

        with pytest.raises(LedgerError):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        _assert_untouched(balances, before, replay_guard, order)

    def test_failed_attempt_can_be_retried(self, engine, balances, make_order):
        order = make_order()
        balances.mint(DAI, FILLER, 50 * DAI_UNIT)
        with pytest.raises(InsufficientInputFunding):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        balances.mint(DAI, FILLER_2, 100 * DAI_UNIT)
        record = engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER_2)

        assert record.filler == FILLER_2

    def test_all_rejections_are_settlement_errors(self, engine, balances, make_order):
        order = make_order(min_output_amount=1_000 * USDC_UNIT)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        with pytest.raises(SettlementError):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)


class TestSettleSignatures:

    def test_unsigned_order_rejected(self, engine, balances, make_order, replay_guard):
        order = make_order(sign=False)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        with pytest.raises(InvalidSignature):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert not replay_guard.is_consumed(order.order_id)

    def test_tampered_order_rejected(self, engine, balances, make_order):
        order = make_order()
        tampered = replace(order, min_output_amount=1)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        with pytest.raises(InvalidSignature):
            engine.settle(tampered, exact_in_payload(tampered, RECIPIENT), FILLER)

    def test_unsigned_order_accepted_when_not_required(self, engine, balances, make_order):
        engine.require_signatures = False
        order = make_order(sign=False)
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        record = engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        assert record.order_id == order.order_id


# ─────────────────────────────────────────────────────────────
# CANCEL / STATS / CONCURRENCY / RESTART
# ─────────────────────────────────────────────────────────────

class TestCancel:

    def test_cancel_then_settle_rejected(self, engine, balances, make_order, requester_key):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        entry = engine.cancel(order, requester_key.sign(cancellation_message(order.order_id)))

        assert entry.kind == EntryKind.CANCELLED
        with pytest.raises(OrderAlreadyFilled):
            engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)
        assert balances.balance_of(DAI, FILLER) == 100 * DAI_UNIT

    def test_cancel_requires_requester_signature(self, engine, make_order, replay_guard):
        order = make_order()
        stranger = Ed25519KeyManager.generate()

        with pytest.raises(InvalidSignature):
            engine.cancel(order, stranger.sign(cancellation_message(order.order_id)))

        assert not replay_guard.is_consumed(order.order_id)

    def test_cancel_after_fill_rejected(self, engine, balances, make_order, requester_key):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        with pytest.raises(OrderAlreadyFilled):
            engine.cancel(order, requester_key.sign(cancellation_message(order.order_id)))


class TestStats:

    def test_stats_count_fills_cancels_and_rejections(self, engine, balances, make_order, requester_key):
        filled = make_order()
        cancelled = make_order()
        short = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)

        engine.settle(filled, exact_in_payload(filled, RECIPIENT), FILLER)
        engine.cancel(cancelled, requester_key.sign(cancellation_message(cancelled.order_id)))
        with pytest.raises(InsufficientInputFunding):
            engine.settle(short, exact_in_payload(short, RECIPIENT), FILLER)

        stats = engine.get_settlement_stats()
        assert stats["total"] == 2
        assert stats["by_kind"] == {"filled": 1, "cancelled": 1}
        assert stats["rejections"] == {"InsufficientInputFunding": 1}


class TestConcurrentFillers:

    def test_two_fillers_race_one_wins(self, engine, balances, make_order):
        order = make_order()
        balances.mint(DAI, FILLER, 100 * DAI_UNIT)
        balances.mint(DAI, FILLER_2, 100 * DAI_UNIT)
        barrier = threading.Barrier(2)
        results, errors = [], []

        def attempt(filler):
            barrier.wait()
            try:
                results.append(engine.settle(order, exact_in_payload(order, RECIPIENT), filler))
            except OrderAlreadyFilled as exc:
                errors.append(exc)

        threads = [threading.Thread(target=attempt, args=(f,)) for f in (FILLER, FILLER_2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert len(errors) == 1
        loser = FILLER_2 if results[0].filler == FILLER else FILLER
        assert balances.balance_of(DAI, loser) == 100 * DAI_UNIT

    def test_two_engines_sharing_a_guard(self, engine, balances, adapter, replay_guard, engine_key, make_order):
        other = SettlementEngine(
            balances, adapter, replay_guard, engine_key,
            address="reactor:relay-2", clock=lambda: NOW,
        )
        order = make_order()
        balances.mint(DAI, FILLER, 200 * DAI_UNIT)

        engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)
        with pytest.raises(OrderAlreadyFilled):
            other.settle(order, exact_in_payload(order, RECIPIENT), FILLER)


class TestRestart:

    def test_consumed_orders_survive_restart(self, engine, balances, adapter, engine_key, make_order, replay_guard):
        order = make_order()
        balances.mint(DAI, FILLER, 200 * DAI_UNIT)
        engine.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

        reloaded = ReplayGuard(engine_key, ledger_path=str(replay_guard.ledger_file.parent))
        restarted = SettlementEngine(
            balances, adapter, reloaded, engine_key, address=ENGINE, clock=lambda: NOW,
        )

        with pytest.raises(OrderAlreadyFilled):
            restarted.settle(order, exact_in_payload(order, RECIPIENT), FILLER)

    @pytest.mark.parametrize("break_append", [fail_first_fsync, half_write_appends])
    def test_interrupted_ledger_write_then_retry_and_restart(
        self, engine, balances, adapter, engine_key, make_order, replay_guard, monkeypatch, break_append,
    ):
        first, second = make_order(), make_order()
        balances.mint(DAI, FILLER, 200 * DAI_UNIT)
        engine.settle(first, exact_in_payload(first, RECIPIENT), FILLER)
        before = balances.snapshot()
        break_append(monkeypatch)

        with pytest.raises(LedgerError):
            engine.settle(second, exact_in_payload(second, RECIPIENT), FILLER)

        _assert_untouched(balances, before, replay_guard, second)
        monkeypatch.undo()
        engine.settle(second, exact_in_payload(second, RECIPIENT), FILLER)

        reloaded = ReplayGuard(engine_key, ledger_path=str(replay_guard.ledger_file.parent))
        assert reloaded.consumed_ids == {first.order_id, second.order_id}
        assert reloaded.get_stats()["next_sequence"] == 2
        restarted = SettlementEngine(
            balances, adapter, reloaded, engine_key, address=ENGINE, clock=lambda: NOW,
        )
        with pytest.raises(OrderAlreadyFilled):
            restarted.settle(second, exact_in_payload(second, RECIPIENT), FILLER)
