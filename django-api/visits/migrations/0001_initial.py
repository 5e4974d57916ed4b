import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="CategorySettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("category", models.CharField(max_length=50, unique=True)),
                ("default_capacity", models.PositiveIntegerField()),
                ("cooldown_days", models.PositiveIntegerField(default=7)),
                ("capacity_exempt", models.BooleanField(default=False)),
                ("ticket_prefix", models.CharField(max_length=8)),
                ("average_service_minutes", models.PositiveIntegerField(default=8)),
                ("service_desks", models.PositiveIntegerField(default=1)),
                ("alert_threshold_minutes", models.PositiveIntegerField(default=30)),
                ("max_queue_alert", models.PositiveIntegerField(default=15)),
                ("is_active", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name_plural": "category settings",
                "ordering": ["category"],
            },
        ),
        migrations.CreateModel(
            name="CapacityDay",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("category", models.CharField(max_length=50)),
                ("max_capacity", models.PositiveIntegerField()),
                ("current_count", models.PositiveIntegerField(default=0)),
                ("is_operating_day", models.BooleanField(default=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("temporary_adjustment", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["date", "category"],
                "constraints": [
                    models.UniqueConstraint(fields=("date", "category"), name="uniq_capacity_day"),
                    models.CheckConstraint(
                        condition=models.Q(current_count__gte=0),
                        name="capacity_day_count_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SlotReservation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("requester_id", models.CharField(max_length=64)),
                ("category", models.CharField(max_length=50)),
                ("date", models.DateField()),
                ("time_window", models.CharField(blank=True, default="", max_length=11)),
                (
                    "status",
                    models.CharField(
                        choices=[("reserved", "Reserved"), ("consumed", "Consumed"), ("released", "Released")],
                        default="reserved",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-date", "-created_at"],
                "indexes": [
                    models.Index(fields=["requester_id", "category", "status"], name="visits_slot_request_5f0a1c_idx"),
                    models.Index(fields=["status", "date"], name="visits_slot_status_8e2b7d_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(status__in=["reserved", "consumed"]),
                        fields=("requester_id", "category", "date"),
                        name="uniq_open_reservation",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Ticket",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("ticket_number", models.CharField(max_length=32, unique=True)),
                ("requester_id", models.CharField(max_length=64)),
                ("category", models.CharField(max_length=50)),
                ("valid_date", models.DateField()),
                ("time_window", models.CharField(blank=True, default="", max_length=11)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("used", "Used"), ("cancelled", "Cancelled")],
                        default="active",
                        max_length=10,
                    ),
                ),
                ("issued_at", models.DateTimeField()),
                ("redeemed_at", models.DateTimeField(blank=True, null=True)),
                ("redeemed_by", models.CharField(blank=True, max_length=64, null=True)),
                (
                    "reservation",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ticket",
                        to="visits.slotreservation",
                    ),
                ),
            ],
            options={
                "ordering": ["-issued_at"],
                "indexes": [
                    models.Index(fields=["valid_date", "status"], name="visits_tick_valid_d_3c9e4a_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="QueueEntry",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("category", models.CharField(max_length=50)),
                ("service_date", models.DateField()),
                ("priority", models.BooleanField(default=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("waiting", "Waiting"),
                            ("called", "Called"),
                            ("served", "Served"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("no_show", "No_Show"),
                        ],
                        default="waiting",
                        max_length=10,
                    ),
                ),
                ("joined_at", models.DateTimeField()),
                ("called_at", models.DateTimeField(blank=True, null=True)),
                ("served_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancel_reason", models.CharField(blank=True, default="", max_length=255)),
                (
                    "ticket",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="queue_entries",
                        to="visits.ticket",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "queue entries",
                "ordering": ["joined_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["category", "service_date", "status", "joined_at"],
                        name="visits_queu_categor_7d41b2_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(status__in=["waiting", "called"]),
                        fields=("ticket",),
                        name="uniq_open_queue_entry",
                    ),
                ],
            },
        ),
    ]
