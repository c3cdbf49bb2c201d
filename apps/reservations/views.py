"""API views for the reservations domain."""

from __future__ import annotations

import json
import logging

import stripe  # type: ignore
from django.conf import settings  # type: ignore
from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from .domain.exceptions import Forbidden, InvalidReservation, InvalidTransition, NotFound, ReservationError
from .serializers import (
    CancelSerializer,
    ReservationCreateSerializer,
    ReservationSerializer,
    ScreenBookingSerializer,
)
from .services import get_reservation_service

logger = logging.getLogger(__name__)

LIST_FILTERS = {
    "screen": "list_for_screen",
    "owner": "list_for_owner",
    "renter": "list_for_renter",
}


def handle_reservation_error(exc: ReservationError) -> Response:
    """Render a service error as {"code", "detail", ...} with its HTTP status."""

    return Response(exc.to_dict(), status=exc.http_status)


def _is_staff(user) -> bool:  # type: ignore
    return bool(getattr(user, "is_staff", False) or getattr(user, "is_superuser", False))


class ReservationViewSet(viewsets.ViewSet):
    """Create, list and drive reservations through their lifecycle."""

    permission_classes = [permissions.IsAuthenticated]

    def handle_exception(self, exc):  # type: ignore
        if isinstance(exc, ReservationError):
            return handle_reservation_error(exc)
        return super().handle_exception(exc)

    @property
    def service(self):  # type: ignore
        return get_reservation_service()

    def _user_id(self) -> str:
        return str(self.request.user.pk)

    def _render(self, reservation, status_code=status.HTTP_200_OK) -> Response:  # type: ignore
        return Response(ReservationSerializer(reservation).data, status=status_code)

    def list(self, request):  # type: ignore
        given = {key: request.query_params[key] for key in LIST_FILTERS if request.query_params.get(key)}
        if len(given) != 1:
            raise InvalidReservation("Pass exactly one of screen, owner or renter")

        key, value = given.popitem()
        if key in ("owner", "renter") and value != self._user_id() and not _is_staff(request.user):
            raise Forbidden(f"{key}={value}", self._user_id())

        reservations = getattr(self.service, LIST_FILTERS[key])(value)
        if key != "screen" or _is_staff(request.user):
            return Response(ReservationSerializer(reservations, many=True).data)

        # Parties see their own bookings in full, everyone else only the booked days
        user_id = self._user_id()
        return Response([
            (ReservationSerializer if user_id in (r.owner_id, r.renter_id) else ScreenBookingSerializer)(r).data
            for r in reservations
        ])

    def retrieve(self, request, pk=None):  # type: ignore
        reservation = self.service.get(pk)
        user_id = self._user_id()
        if user_id not in (reservation.owner_id, reservation.renter_id) and not _is_staff(request.user):
            raise Forbidden(pk, user_id)
        return self._render(reservation)

    def create(self, request):  # type: ignore
        serializer = ReservationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        reservation = self.service.create_reservation(
            screen_id=data["screen_id"],
            owner_id=data["owner_id"],
            renter_id=self._user_id(),
            dates=data["dates"],
            amount_total=data["amount_total"],
            currency=data["currency"],
            content_id=data.get("content_id") or None,
            special_instructions=data.get("special_instructions"),
            payer_ref=data.get("payer_ref"),
        )
        return self._render(reservation, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):  # type: ignore
        return self._render(self.service.accept_booking(pk, self._user_id()))

    @action(detail=True, methods=["post"])
    def decline(self, request, pk=None):  # type: ignore
        return self._render(self.service.decline_booking(pk, self._user_id()))

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reservation = self.service.cancel_booking(
            pk,
            self._user_id(),
            serializer.validated_data["role"],
            reason=serializer.validated_data.get("reason"),
        )
        return self._render(reservation)


class StripeWebhookView(APIView):
    """Settles refunds confirmed by Stripe."""

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    REFUND_EVENTS = ("refund.created", "refund.updated")

    def post(self, request):  # type: ignore
        secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set; rejecting webhook")
            return Response({"detail": "Webhook not configured"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        try:
            payload = request.body.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload,
                request.META.get("HTTP_STRIPE_SIGNATURE", ""),
                secret,
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
            event = json.loads(payload)
        except stripe.SignatureVerificationError:
            return Response({"detail": "Invalid signature"}, status=status.HTTP_400_BAD_REQUEST)
        except ValueError:
            return Response({"detail": "Invalid payload"}, status=status.HTTP_400_BAD_REQUEST)

        if event.get("type") not in self.REFUND_EVENTS:
            return Response({"received": True})

        refund = (event.get("data") or {}).get("object") or {}
        booking_id = (refund.get("metadata") or {}).get("booking_id")
        if not booking_id or refund.get("status") != "succeeded":
            return Response({"received": True})

        try:
            get_reservation_service().settle_refund(booking_id)
        except NotFound:
            logger.warning(f"Refund webhook for unknown reservation {booking_id}")
        except InvalidTransition as e:
            logger.info(f"Ignoring refund webhook for {booking_id}: {e}")

        return Response({"received": True})
