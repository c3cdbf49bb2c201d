"""Persistence models for screen reservations."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Reservation(models.Model):
    """One booking of a screen for one or more calendar days."""

    class Status(models.TextChoices):
        REQUESTED = "requested", _("Requested")
        ACCEPTED = "accepted", _("Accepted")
        LIVE = "live", _("Live")
        COMPLETED = "completed", _("Completed")
        DECLINED = "declined", _("Declined")
        CANCELLED = "cancelled", _("Cancelled")
        REFUNDED = "refunded", _("Refunded")

    class CancelledBy(models.TextChoices):
        OWNER = "owner", _("Owner")
        RENTER = "renter", _("Renter")

    id = models.CharField(primary_key=True, max_length=32, editable=False)
    screen_id = models.CharField(max_length=64)
    owner_id = models.CharField(max_length=64)
    renter_id = models.CharField(max_length=64)
    dates = models.JSONField(
        default=list,
        help_text=_("Sorted ISO YYYY-MM-DD days, never empty."),
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.REQUESTED,
    )
    amount_total = models.PositiveIntegerField(help_text=_("Total price in minor units (cents)."))
    currency = models.CharField(max_length=3, default="usd")
    content_id = models.CharField(max_length=64, blank=True, null=True)
    special_instructions = models.TextField(blank=True, null=True)
    charge_ref = models.CharField(max_length=255, blank=True, null=True)
    cancelled_by = models.CharField(max_length=16, choices=CancelledBy.choices, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    version = models.PositiveIntegerField(
        default=1,
        help_text=_("Optimistic concurrency counter, bumped on every write."),
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _("Reservation")
        verbose_name_plural = _("Reservations")
        ordering = ["-created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_total__gt=0),
                name="reservation_positive_amount",
            ),
        ]
        indexes = [
            models.Index(fields=["screen_id", "status"], name="reservation_screen_status_idx"),
            models.Index(fields=["owner_id", "status", "-created_at"], name="reservation_owner_idx"),
            models.Index(fields=["renter_id", "-created_at"], name="reservation_renter_idx"),
        ]

    def __str__(self) -> str:
        return f"Reservation {self.id} for screen {self.screen_id} ({self.status})"


class ScreenCalendar(models.Model):
    """Version counter of a screen's committed days.

    Bumped whenever one of the screen's reservations enters or leaves a
    committed status, so two transactions that both read the calendar and
    both try to change it cannot both commit.
    """

    screen_id = models.CharField(primary_key=True, max_length=64)
    version = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Screen calendar")
        verbose_name_plural = _("Screen calendars")

    def __str__(self) -> str:
        return f"Calendar {self.screen_id} v{self.version}"


class ReservationDate(models.Model):
    """A committed (screen, day) claim; the unique constraint is the last line of defence."""

    reservation = models.ForeignKey(
        Reservation,
        on_delete=models.CASCADE,
        related_name="claimed_dates",
    )
    screen_id = models.CharField(max_length=64)
    day = models.DateField()

    class Meta:
        verbose_name = _("Reserved day")
        verbose_name_plural = _("Reserved days")
        constraints = [
            models.UniqueConstraint(
                fields=["screen_id", "day"],
                name="reservation_day_unique_per_screen",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.screen_id} {self.day:%Y-%m-%d} -> {self.reservation_id}"


class RefundIncident(models.Model):
    """
    Refund that failed and awaits remediation.

    ``reservation`` is empty for an orphaned charge: the renter was charged
    but the reservation was never stored. ``booking_ref`` is always set.
    """

    class Status(models.TextChoices):
        OPEN = "open", _("Open")
        RESOLVED = "resolved", _("Resolved")

    reservation = models.ForeignKey(
        Reservation,
        on_delete=models.CASCADE,
        related_name="refund_incidents",
        null=True,
        blank=True,
    )
    booking_ref = models.CharField(max_length=64)
    charge_ref = models.CharField(max_length=255)
    amount_total = models.PositiveIntegerField()
    currency = models.CharField(max_length=3)
    error = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.OPEN)
    attempts = models.PositiveSmallIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = _("Refund incident")
        verbose_name_plural = _("Refund incidents")
        ordering = ["created_at"]
        indexes = [models.Index(fields=["status", "created_at"], name="refund_incident_status_idx")]

    def __str__(self) -> str:
        return f"Refund incident for {self.booking_ref} ({self.status})"

    def mark_resolved(self) -> None:
        self.status = self.Status.RESOLVED
        self.resolved_at = timezone.now()
        self.save(update_fields=["status", "resolved_at"])
