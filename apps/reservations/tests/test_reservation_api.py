"""Tests for the reservations REST API and the Stripe webhook."""

from __future__ import annotations

import hashlib
import hmac
import json
import time

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.reservations.models import Reservation
from apps.reservations.services import get_payment_gateway

User = get_user_model()

WEBHOOK_SECRET = "whsec_test_secret"


class ReservationAPITests(APITestCase):
    def setUp(self) -> None:
        get_payment_gateway.cache_clear()
        self.gateway = get_payment_gateway()
        self.owner = User.objects.create_user(username="screen-owner", password="StrongPass123")
        self.renter = User.objects.create_user(username="advertiser", password="StrongPass123")
        self.other_renter = User.objects.create_user(username="advertiser-2", password="StrongPass123")

    def _create(self, dates, user=None, **extra):
        self.client.force_authenticate(user or self.renter)
        payload = {
            "screen_id": "screen-1",
            "owner_id": str(self.owner.pk),
            "dates": dates,
            "amount_total": 5000,
            "currency": "usd",
        }
        payload.update(extra)
        return self.client.post(reverse("reservation-list"), payload, format="json")

    def _post(self, name, reservation_id, user, payload=None):
        self.client.force_authenticate(user)
        return self.client.post(
            reverse(f"reservation-{name}", kwargs={"pk": reservation_id}),
            payload or {},
            format="json",
        )

    def test_requires_authentication(self) -> None:
        response = self.client.get(reverse("reservation-list"), {"screen": "screen-1"})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_renter_creates_reservation(self) -> None:
        response = self._create(["2025-03-11", "2025-03-10"], special_instructions="  Loop twice  ")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], "requested")
        self.assertEqual(response.data["dates"], ["2025-03-10", "2025-03-11"])
        self.assertEqual(response.data["renter_id"], str(self.renter.pk))
        self.assertEqual(response.data["special_instructions"], "Loop twice")
        row = Reservation.objects.get(pk=response.data["id"])
        self.assertIn(row.charge_ref, self.gateway.charges)

    def test_invalid_dates_are_rejected(self) -> None:
        response = self._create(["2025-02-30"])

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_input")
        self.assertFalse(Reservation.objects.exists())

    def test_declined_payment_returns_402(self) -> None:
        self.gateway.declined_payers.add("pm_declined")

        response = self._create(["2025-03-10"], payer_ref="pm_declined")

        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
        self.assertEqual(response.data["code"], "payment_failed")
        self.assertFalse(Reservation.objects.exists())

    def test_owner_accepts_and_conflicts_are_reported(self) -> None:
        first = self._create(["2025-03-10", "2025-03-11"]).data
        second = self._create(["2025-03-11", "2025-03-12"], user=self.other_renter).data

        accepted = self._post("accept", first["id"], self.owner)
        conflict = self._post("accept", second["id"], self.owner)

        self.assertEqual(accepted.status_code, status.HTTP_200_OK, accepted.data)
        self.assertEqual(accepted.data["status"], "accepted")
        self.assertEqual(conflict.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(conflict.data["code"], "date_conflict")
        self.assertEqual(conflict.data["dates"], ["2025-03-11"])
        self.assertEqual(Reservation.objects.get(pk=second["id"]).status, "requested")

    def test_renter_cannot_accept(self) -> None:
        created = self._create(["2025-03-10"]).data

        response = self._post("accept", created["id"], self.renter)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "forbidden")

    def test_accept_after_renter_cancelled(self) -> None:
        created = self._create(["2025-03-10"]).data
        self._post("cancel", created["id"], self.renter, {"role": "renter"})

        response = self._post("accept", created["id"], self.owner)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "already_cancelled")

    def test_decline_twice(self) -> None:
        created = self._create(["2025-03-10"]).data

        first = self._post("decline", created["id"], self.owner)
        second = self._post("decline", created["id"], self.owner)

        self.assertEqual(first.data["status"], "declined")
        self.assertEqual(second.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(second.data["code"], "invalid_transition")
        self.assertEqual(second.data["status"], "declined")

    def test_owner_cancels_accepted_with_reason(self) -> None:
        created = self._create(["2025-03-10"]).data
        self._post("accept", created["id"], self.owner)

        response = self._post(
            "cancel",
            created["id"],
            self.owner,
            {"role": "owner", "reason": "Screen maintenance"},
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "cancelled")
        self.assertEqual(response.data["cancelled_by"], "owner")
        self.assertEqual(response.data["cancellation_reason"], "Screen maintenance")
        row = Reservation.objects.get(pk=created["id"])
        self.assertIn(row.charge_ref, self.gateway.refunds)

    def test_cancel_requires_a_valid_role(self) -> None:
        created = self._create(["2025-03-10"]).data

        response = self._post("cancel", created["id"], self.renter, {"role": "system"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_reservation(self) -> None:
        response = self._post("accept", "missing", self.owner)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "not_found")

    def test_detail_is_visible_to_parties_only(self) -> None:
        created = self._create(["2025-03-10"]).data
        url = reverse("reservation-detail", kwargs={"pk": created["id"]})

        self.client.force_authenticate(self.owner)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_200_OK)
        self.client.force_authenticate(self.other_renter)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)

    def test_listings(self) -> None:
        first = self._create(["2025-03-10"]).data
        second = self._create(["2025-03-11"], user=self.other_renter).data
        url = reverse("reservation-list")

        self.client.force_authenticate(self.owner)
        by_screen = self.client.get(url, {"screen": "screen-1"})
        by_owner = self.client.get(url, {"owner": str(self.owner.pk)})
        self.client.force_authenticate(self.renter)
        by_renter = self.client.get(url, {"renter": str(self.renter.pk)})
        foreign = self.client.get(url, {"renter": str(self.other_renter.pk)})
        unfiltered = self.client.get(url)

        self.assertEqual([r["id"] for r in by_screen.data], [second["id"], first["id"]])
        self.assertEqual([r["id"] for r in by_owner.data], [second["id"], first["id"]])
        self.assertEqual([r["id"] for r in by_renter.data], [first["id"]])
        self.assertEqual(foreign.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(unfiltered.status_code, status.HTTP_400_BAD_REQUEST)

    def test_screen_listing_hides_other_parties_details(self) -> None:
        own = self._create(["2025-03-10"]).data
        foreign = self._create(["2025-03-11"], user=self.other_renter, special_instructions="Private").data

        self.client.force_authenticate(self.renter)
        response = self.client.get(reverse("reservation-list"), {"screen": "screen-1"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        by_id = {r["id"]: r for r in response.data}
        self.assertEqual(by_id[own["id"]]["amount_total"], 5000)
        self.assertEqual(
            by_id[foreign["id"]],
            {"id": foreign["id"], "screen_id": "screen-1", "dates": ["2025-03-11"], "status": "requested"},
        )


def _signed(payload: dict, secret: str = WEBHOOK_SECRET) -> tuple[str, str]:
    body = json.dumps(payload)
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{body}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return body, f"t={timestamp},v1={signature}"


@override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
class StripeWebhookTests(APITestCase):
    def setUp(self) -> None:
        get_payment_gateway.cache_clear()
        self.owner = User.objects.create_user(username="screen-owner", password="StrongPass123")
        self.renter = User.objects.create_user(username="advertiser", password="StrongPass123")
        self.client.force_authenticate(self.renter)
        created = self.client.post(
            reverse("reservation-list"),
            {
                "screen_id": "screen-1",
                "owner_id": str(self.owner.pk),
                "dates": ["2025-03-10"],
                "amount_total": 5000,
            },
            format="json",
        ).data
        self.reservation_id = created["id"]
        self.client.force_authenticate(None)

    def _refund_event(self, status_value="succeeded", booking_id=None):
        return {
            "id": "evt_test",
            "object": "event",
            "type": "refund.updated",
            "data": {
                "object": {
                    "id": "re_test",
                    "object": "refund",
                    "status": status_value,
                    "metadata": {"booking_id": booking_id or self.reservation_id},
                }
            },
        }

    def _send(self, payload, secret=WEBHOOK_SECRET):
        body, header = _signed(payload, secret)
        return self.client.post(
            reverse("stripe-webhook"),
            data=body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=header,
        )

    def _cancel(self):
        self.client.force_authenticate(self.renter)
        self.client.post(
            reverse("reservation-cancel", kwargs={"pk": self.reservation_id}),
            {"role": "renter"},
            format="json",
        )
        self.client.force_authenticate(None)

    def test_succeeded_refund_settles_cancelled_reservation(self) -> None:
        self._cancel()

        response = self._send(self._refund_event())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Reservation.objects.get(pk=self.reservation_id).status, "refunded")

    def test_pending_refund_is_ignored(self) -> None:
        self._cancel()

        response = self._send(self._refund_event(status_value="pending"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Reservation.objects.get(pk=self.reservation_id).status, "cancelled")

    def test_refund_for_active_reservation_is_ignored(self) -> None:
        response = self._send(self._refund_event())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Reservation.objects.get(pk=self.reservation_id).status, "requested")

    def test_unknown_booking_is_acknowledged(self) -> None:
        response = self._send(self._refund_event(booking_id="missing"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_bad_signature_is_rejected(self) -> None:
        self._cancel()

        response = self._send(self._refund_event(), secret="whsec_wrong")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Reservation.objects.get(pk=self.reservation_id).status, "cancelled")
