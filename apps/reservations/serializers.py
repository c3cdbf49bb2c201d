"""Serializers for the reservations API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore


class ReservationSerializer(serializers.Serializer):
    """Read representation of a domain Reservation."""

    id = serializers.CharField()
    screen_id = serializers.CharField()
    owner_id = serializers.CharField()
    renter_id = serializers.CharField()
    dates = serializers.SerializerMethodField()
    status = serializers.SerializerMethodField()
    amount_total = serializers.IntegerField()
    currency = serializers.CharField()
    content_id = serializers.CharField(allow_null=True)
    special_instructions = serializers.CharField(allow_null=True)
    cancelled_by = serializers.CharField()
    cancellation_reason = serializers.CharField()
    version = serializers.IntegerField()
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()

    def get_dates(self, obj) -> list[str]:  # type: ignore
        return list(obj.dates)

    def get_status(self, obj) -> str:  # type: ignore
        return obj.status.value


class ScreenBookingSerializer(serializers.Serializer):
    """Booked days on a screen, as shown to users outside the reservation."""

    id = serializers.CharField()
    screen_id = serializers.CharField()
    dates = serializers.SerializerMethodField()
    status = serializers.SerializerMethodField()

    def get_dates(self, obj) -> list[str]:  # type: ignore
        return list(obj.dates)

    def get_status(self, obj) -> str:  # type: ignore
        return obj.status.value


class ReservationCreateSerializer(serializers.Serializer):
    """Booking request from a renter; the renter is the authenticated user."""

    screen_id = serializers.CharField(max_length=64)
    owner_id = serializers.CharField(max_length=64)
    dates = serializers.ListField(child=serializers.CharField(max_length=10), allow_empty=False)
    amount_total = serializers.IntegerField(min_value=1)
    currency = serializers.CharField(max_length=3, default="usd")
    content_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    special_instructions = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    payer_ref = serializers.CharField(max_length=255, required=False, allow_null=True)


class CancelSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=["owner", "renter"])
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
