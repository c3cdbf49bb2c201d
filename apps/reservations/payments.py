"""
Payment gateway adapters

The reservation service only knows the PaymentGateway interface:

    charge = gateway.authorize_and_capture(amount, currency, payer_ref, booking_ref)
    ack = gateway.refund(charge.charge_ref, booking_ref, attempt=1)

StripePaymentGateway talks to Stripe PaymentIntents/Refunds. SandboxPaymentGateway
keeps charges in memory and is used in development and tests.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict

import stripe  # type: ignore
from django.conf import settings  # type: ignore

from apps.reservations.domain.exceptions import PaymentFailed, RefundFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeRef:
    charge_ref: str
    amount: int
    currency: str


@dataclass(frozen=True)
class RefundAck:
    refund_ref: str
    charge_ref: str
    status: str = "pending"


class PaymentGateway(ABC):
    """Charges renters and refunds them"""

    # Whether a charge needs an explicit payment method from the renter
    requires_payer_ref = False

    @abstractmethod
    def authorize_and_capture(
        self,
        amount: int,
        currency: str,
        payer_ref: str,
        booking_ref: str,
    ) -> ChargeRef:
        """
        Charge ``amount`` minor units immediately

        Raises:
            PaymentFailed: the charge was declined or could not be made
        """

    @abstractmethod
    def refund(self, charge_ref: str, booking_ref: str, attempt: int = 1) -> RefundAck:
        """
        Refund a previous charge in full

        ``attempt`` numbers retries of the same refund, starting at 1.

        Raises:
            RefundFailed: the refund could not be issued
        """


class StripePaymentGateway(PaymentGateway):
    """PaymentIntent based gateway; ``payer_ref`` is a Stripe payment method id"""

    requires_payer_ref = True

    def __init__(self, api_key: str | None = None):
        api_key = api_key or getattr(settings, "STRIPE_SECRET_KEY", "")
        if not api_key:
            raise RuntimeError("STRIPE_SECRET_KEY is not set")
        stripe.api_key = api_key

    def authorize_and_capture(self, amount, currency, payer_ref, booking_ref) -> ChargeRef:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                payment_method=payer_ref,
                payment_method_types=["card"],
                confirm=True,
                metadata={
                    "booking_id": booking_ref,
                    "type": "screen_booking",
                },
                idempotency_key=f"charge-{booking_ref}",
            )
        except stripe.CardError as e:
            logger.info(f"Card declined for booking {booking_ref}: {e.code}")
            raise PaymentFailed(str(e.user_message or ""), decline_code=e.code) from e
        except stripe.StripeError as e:
            logger.error(f"Stripe charge failed for booking {booking_ref}: {e}", exc_info=True)
            raise PaymentFailed() from e

        if intent.status != "succeeded":
            logger.warning(f"PaymentIntent {intent.id} for booking {booking_ref} ended in {intent.status}")
            raise PaymentFailed()

        return ChargeRef(charge_ref=intent.id, amount=amount, currency=currency)

    def refund(self, charge_ref, booking_ref, attempt=1) -> RefundAck:
        # One key per attempt; Stripe replays a stored error for a reused key
        try:
            refund = stripe.Refund.create(
                payment_intent=charge_ref,
                reason="requested_by_customer",
                metadata={"booking_id": booking_ref},
                idempotency_key=f"refund-{booking_ref}-{attempt}",
            )
        except stripe.StripeError as e:
            raise RefundFailed(str(e)) from e

        return RefundAck(refund_ref=refund.id, charge_ref=charge_ref, status=refund.status or "pending")


class SandboxPaymentGateway(PaymentGateway):
    """
    In-memory gateway

    Payer refs listed in ``declined_payers`` fail to charge; charge refs listed
    in ``failing_refunds`` fail to refund. Every call is recorded.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self.charges: Dict[str, ChargeRef] = {}
        self.refunds: Dict[str, RefundAck] = {}
        self.declined_payers: set[str] = set()
        self.failing_refunds: set[str] = set()

    def authorize_and_capture(self, amount, currency, payer_ref, booking_ref) -> ChargeRef:
        if payer_ref in self.declined_payers:
            raise PaymentFailed(decline_code="card_declined")

        with self._lock:
            charge = ChargeRef(
                charge_ref=f"ch_sandbox_{next(self._counter)}",
                amount=amount,
                currency=currency,
            )
            self.charges[charge.charge_ref] = charge
        logger.debug(f"Sandbox charged {amount} {currency} for booking {booking_ref}")
        return charge

    def refund(self, charge_ref, booking_ref, attempt=1) -> RefundAck:
        if charge_ref in self.failing_refunds:
            raise RefundFailed(f"Sandbox refund of {charge_ref} rejected")
        if charge_ref not in self.charges:
            raise RefundFailed(f"Unknown charge {charge_ref}")

        with self._lock:
            if charge_ref in self.refunds:
                return self.refunds[charge_ref]
            ack = RefundAck(
                refund_ref=f"re_sandbox_{next(self._counter)}",
                charge_ref=charge_ref,
                status="succeeded",
            )
            self.refunds[charge_ref] = ack
        return ack
