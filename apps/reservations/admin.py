"""Admin registration for reservations."""

from __future__ import annotations

from django.contrib import admin

from .models import RefundIncident, Reservation, ReservationDate, ScreenCalendar


class ReservationDateInline(admin.TabularInline):
    model = ReservationDate
    extra = 0
    can_delete = False
    readonly_fields = ("screen_id", "day")


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "screen_id",
        "owner_id",
        "renter_id",
        "status",
        "amount_total",
        "currency",
        "created_at",
    )
    list_filter = ("status", "currency", "cancelled_by")
    search_fields = ("id", "screen_id", "owner_id", "renter_id", "charge_ref")
    readonly_fields = (
        "id",
        "dates",
        "amount_total",
        "currency",
        "charge_ref",
        "version",
        "created_at",
        "updated_at",
    )
    inlines = [ReservationDateInline]


@admin.register(ScreenCalendar)
class ScreenCalendarAdmin(admin.ModelAdmin):
    list_display = ("screen_id", "version", "updated_at")
    search_fields = ("screen_id",)


@admin.register(RefundIncident)
class RefundIncidentAdmin(admin.ModelAdmin):
    list_display = (
        "booking_ref",
        "reservation",
        "charge_ref",
        "amount_total",
        "currency",
        "status",
        "attempts",
        "created_at",
    )
    list_filter = ("status",)
    search_fields = ("booking_ref", "charge_ref")
    readonly_fields = ("created_at", "resolved_at")
