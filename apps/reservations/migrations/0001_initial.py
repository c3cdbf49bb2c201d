import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Reservation",
            fields=[
                ("id", models.CharField(editable=False, max_length=32, primary_key=True, serialize=False)),
                ("screen_id", models.CharField(max_length=64)),
                ("owner_id", models.CharField(max_length=64)),
                ("renter_id", models.CharField(max_length=64)),
                ("dates", models.JSONField(default=list, help_text="Sorted ISO YYYY-MM-DD days, never empty.")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("requested", "Requested"),
                            ("accepted", "Accepted"),
                            ("live", "Live"),
                            ("completed", "Completed"),
                            ("declined", "Declined"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        default="requested",
                        max_length=16,
                    ),
                ),
                ("amount_total", models.PositiveIntegerField(help_text="Total price in minor units (cents).")),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("content_id", models.CharField(blank=True, max_length=64, null=True)),
                ("special_instructions", models.TextField(blank=True, null=True)),
                ("charge_ref", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "cancelled_by",
                    models.CharField(
                        blank=True,
                        choices=[("owner", "Owner"), ("renter", "Renter")],
                        max_length=16,
                    ),
                ),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Optimistic concurrency counter, bumped on every write.",
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "verbose_name": "Reservation",
                "verbose_name_plural": "Reservations",
                "ordering": ["-created_at", "id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_total__gt=0),
                        name="reservation_positive_amount",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["screen_id", "status"], name="reservation_screen_status_idx"),
                    models.Index(fields=["owner_id", "status", "-created_at"], name="reservation_owner_idx"),
                    models.Index(fields=["renter_id", "-created_at"], name="reservation_renter_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ScreenCalendar",
            fields=[
                ("screen_id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("version", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Screen calendar",
                "verbose_name_plural": "Screen calendars",
            },
        ),
        migrations.CreateModel(
            name="ReservationDate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("screen_id", models.CharField(max_length=64)),
                ("day", models.DateField()),
                (
                    "reservation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="claimed_dates",
                        to="reservations.reservation",
                    ),
                ),
            ],
            options={
                "verbose_name": "Reserved day",
                "verbose_name_plural": "Reserved days",
                "constraints": [
                    models.UniqueConstraint(
                        fields=["screen_id", "day"],
                        name="reservation_day_unique_per_screen",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundIncident",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_ref", models.CharField(max_length=64)),
                ("charge_ref", models.CharField(max_length=255)),
                ("amount_total", models.PositiveIntegerField()),
                ("currency", models.CharField(max_length=3)),
                ("error", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("open", "Open"), ("resolved", "Resolved")],
                        default="open",
                        max_length=16,
                    ),
                ),
                ("attempts", models.PositiveSmallIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "reservation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="refund_incidents",
                        to="reservations.reservation",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund incident",
                "verbose_name_plural": "Refund incidents",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="refund_incident_status_idx"),
                ],
            },
        ),
    ]
