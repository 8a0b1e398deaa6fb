"""
Settlement engine for relay orders.
"""

import logging
import threading
from collections import Counter
from typing import Callable, Dict

from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.core.exceptions import (
    InsufficientBalance,
    InsufficientInputFunding,
    InvalidFillPayload,
    InvalidOrder,
    InvalidSignature,
    OrderExpired,
    SlippageViolation,
)
from relayreactor.core.models import (
    NATIVE_ASSET,
    FillPayload,
    Order,
    SettlementRecord,
    cancellation_message,
)
from relayreactor.core.time import reactor_timestamp, unix_now
from relayreactor.custody.balances import TokenBalances
from relayreactor.custody.ledger import CustodyLedger
from relayreactor.ledger.entry import ConsumptionEntry, EntryKind
from relayreactor.ledger.replay_guard import ReplayGuard
from relayreactor.router.adapter import RouterAdapter

logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Settles signed relay orders through an untrusted router.

    The filler bears execution risk: the engine funds custody, hands the
    opaque payload to the router, and then judges the result purely by
    balance deltas. Either every step succeeds and the order id is
    consumed, or the balance book is exactly as it was before settle().

    Settlements on one engine are serialized; the replay guard
    serializes attempts on the same order id across engines.
    """

    def __init__(
        self,
        balances:           TokenBalances,
        router:             RouterAdapter,
        replay_guard:       ReplayGuard,
        key_manager:        Ed25519KeyManager,
        address:            str = "reactor:relay",
        native_asset:       str = NATIVE_ASSET,
        require_signatures: bool = True,
        clock:              Callable[[], int] = unix_now,
    ):
        """
        Args:
            balances:           Balance book shared with requesters, fillers and the router
            router:             Adapter for the external execution engine
            replay_guard:       Durable set of consumed order ids
            key_manager:        Signs settlement records
            address:            The engine's own account (custody) in the balance book
            native_asset:       Address of the chain's native currency
            require_signatures: Reject orders without a valid requester signature
            clock:              Returns the current unix time in seconds
        """
        self.balances           = balances
        self.router             = router
        self.replay_guard       = replay_guard
        self.key_manager        = key_manager
        self.address            = address
        self.native_asset       = native_asset
        self.require_signatures = require_signatures
        self.clock              = clock

        self._lock       = threading.RLock()
        self._rejections: Counter = Counter()

    # ── Settle ────────────────────────────────────────────────

    def settle(
        self,
        order:        Order,
        fill_payload: FillPayload,
        filler:       str,
    ) -> SettlementRecord:
        """
        Settle an order with a filler-supplied router payload.

        Raises:
            OrderExpired              now > order.deadline
            InvalidOrder              order shape invalid or recipient is the engine
            InvalidSignature          missing or bad requester signature
            OrderAlreadyFilled        order id consumed or being settled
            InvalidFillPayload        native value attached to a token-input order
            InsufficientInputFunding  payer cannot cover input_amount
            RouterExecutionFailed     router call failed
            SlippageViolation         recipient received less than min_output_amount

        Returns:
            Signed settlement record (also persisted in the replay ledger)
        """
        with self._lock:
            try:
                self._validate_order(order, self.clock())
                reservation = self.replay_guard.reserve(order.order_id)
            except Exception as exc:
                self._reject(order, exc)
                raise

            try:
                with self.balances.transaction():
                    self._validate_payload(order, fill_payload)
                    record = self._execute(order, fill_payload, filler)
                    # Last step inside the transaction: if the write fails,
                    # every transfer above is rolled back.
                    self.replay_guard.commit(
                        reservation, payload=record.to_dict(), kind=EntryKind.FILLED,
                    )
            except Exception as exc:
                self.replay_guard.release(reservation)
                self._reject(order, exc)
                raise

            logger.info(
                f"settlement: order {order.order_id} filled by {filler} "
                f"delivered={record.amount_delivered} min={order.min_output_amount} "
                f"swept={record.swept_output} refunded={record.input_refunded}"
            )
            return record

    # ── Cancel ────────────────────────────────────────────────

    def cancel(self, order: Order, signature: str) -> ConsumptionEntry:
        """
        Invalidate an unfilled order on the requester's behalf.

        signature is the requester's Ed25519 signature over
        cancellation_message(order.order_id).
        """
        with self._lock:
            if not Ed25519KeyManager.verify_detached(
                cancellation_message(order.order_id), signature, order.requester,
            ):
                exc = InvalidSignature(
                    "Cancellation not signed by requester",
                    {"order_id": order.order_id},
                )
                self._reject(order, exc)
                raise exc

            try:
                entry = self.replay_guard.consume(
                    order.order_id,
                    payload={
                        "requester":    order.requester,
                        "cancelled_at": reactor_timestamp(),
                    },
                    kind=EntryKind.CANCELLED,
                )
            except Exception as exc:
                self._reject(order, exc)
                raise

            logger.info(f"settlement: order {order.order_id} cancelled by requester")
            return entry

    # ── Stats ─────────────────────────────────────────────────

    def get_settlement_stats(self) -> dict:
        """
        Returns:
            Dict with consumed counts by kind and rejections by error kind
        """
        guard = self.replay_guard.get_stats()
        return {
            "total":       guard["consumed"],
            "by_kind":     guard["by_kind"],
            "rejections":  dict(self._rejections),
        }

    # ── Validation ────────────────────────────────────────────

    def _validate_order(self, order: Order, now: int) -> None:
        if order.is_expired(now):
            raise OrderExpired(
                f"Order expired at {order.deadline}",
                {"order_id": order.order_id, "deadline": order.deadline, "now": now},
            )

        schema = order.validate_schema()
        if not schema:
            raise InvalidOrder(
                "Order violates shape invariants",
                {"order_id": order.order_id, "errors": "; ".join(schema.errors)},
            )

        if order.recipient == self.address:
            raise InvalidOrder(
                "Recipient cannot be the settlement engine",
                {"order_id": order.order_id},
            )

        if self.require_signatures and not order.verify_signature():
            raise InvalidSignature(
                "Order not signed by requester",
                {"order_id": order.order_id},
            )

    def _validate_payload(self, order: Order, payload: FillPayload) -> None:
        if order.input_token != self.native_asset:
            if payload.value != 0:
                raise InvalidFillPayload(
                    "Native value attached to a token-input order",
                    {"order_id": order.order_id, "value": payload.value},
                )
        elif payload.value > order.input_amount:
            raise InvalidFillPayload(
                "Native value exceeds order input amount",
                {"order_id": order.order_id, "value": payload.value, "input_amount": order.input_amount},
            )

    # ── Execution ─────────────────────────────────────────────

    def _execute(
        self,
        order:   Order,
        payload: FillPayload,
        filler:  str,
    ) -> SettlementRecord:
        payer       = order.requester if order.payer_is_user else filler
        swap_target = self.address if order.router_must_custody else order.recipient

        custody = CustodyLedger(self.balances, self.address)
        custody.open([order.input_token, order.output_token], watch=[order.recipient])

        # 1. fund custody from the payer
        self._pull_input(order, payer)

        # 2. opaque router call
        self.router.execute(payload, caller=self.address)
        custody.close()

        # 3. sweep: all output to recipient, unused input back to payer
        swept_output   = self._sweep(order.output_token, custody.after(order.output_token), order.recipient)
        input_excess   = custody.delta(order.input_token)
        input_refunded = self._sweep(order.input_token, max(input_excess, 0), payer)

        # 4. minimum output, measured at the recipient
        delivered = (
            self.balances.balance_of(order.output_token, order.recipient)
            - custody.before(order.output_token, order.recipient)
        )
        if delivered < order.min_output_amount:
            raise SlippageViolation(
                "Recipient received less than the minimum output",
                {
                    "order_id":  order.order_id,
                    "delivered": delivered,
                    "minimum":   order.min_output_amount,
                    "target":    swap_target,
                },
            )

        return SettlementRecord.create(
            order_id=           order.order_id,
            filler=             filler,
            requester=          order.requester,
            recipient=          order.recipient,
            swap_target=        swap_target,
            input_token=        order.input_token,
            input_amount=       order.input_amount,
            input_payer=        payer,
            input_refunded=     input_refunded,
            output_token=       order.output_token,
            amount_delivered=   delivered,
            swept_output=       swept_output,
            min_output_amount=  order.min_output_amount,
            native_value=       payload.value,
            settler_public_key= self.key_manager.public_key_hex,
        ).sign(self.key_manager)

    def _pull_input(self, order: Order, payer: str) -> None:
        try:
            self.balances.transfer(order.input_token, payer, self.address, order.input_amount)
        except InsufficientBalance as exc:
            raise InsufficientInputFunding(
                "Payer cannot fund order input",
                {
                    "order_id": order.order_id,
                    "payer":    payer,
                    "token":    order.input_token,
                    "required": order.input_amount,
                    "balance":  self.balances.balance_of(order.input_token, payer),
                },
            ) from exc

    def _sweep(self, token: str, amount: int, recipient: str) -> int:
        if amount <= 0:
            return 0
        self.balances.transfer(token, self.address, recipient, amount)
        if token == self.native_asset:
            logger.debug(f"settlement: value transfer {amount} to {recipient}")
        else:
            logger.debug(f"settlement: swept {amount} of {token} to {recipient}")
        return amount

    def _reject(self, order: Order, exc: Exception) -> None:
        kind = type(exc).__name__
        self._rejections[kind] += 1
        logger.warning(f"settlement: order {order.order_id} rejected {kind}: {exc}")
