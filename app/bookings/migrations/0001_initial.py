import uuid

import django.core.validators
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CoachingPackage",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "package_type",
                    models.CharField(
                        choices=[
                            ("3_session", "3 Sessions"),
                            ("5_session", "5 Sessions"),
                            ("10_session", "10 Sessions"),
                        ],
                        max_length=16,
                    ),
                ),
                ("total_sessions", models.PositiveIntegerField()),
                ("remaining_sessions", models.PositiveIntegerField()),
                ("used_sessions", models.PositiveIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("exhausted", "Exhausted"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=16,
                    ),
                ),
                ("price_in_cents", models.PositiveIntegerField()),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="coaching_packages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Coaching Package",
                "verbose_name_plural": "Coaching Packages",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="ExpertSession",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "session_type",
                    models.CharField(
                        choices=[
                            ("coding", "Coding Interview"),
                            ("system_design", "System Design"),
                            ("behavioral", "Behavioral"),
                            ("mock_full", "Full Mock Interview"),
                        ],
                        default="coding",
                        max_length=32,
                    ),
                ),
                ("scheduled_at", models.DateTimeField(db_index=True)),
                (
                    "duration_minutes",
                    models.PositiveSmallIntegerField(
                        default=60,
                        validators=[
                            django.core.validators.MinValueValidator(30),
                            django.core.validators.MaxValueValidator(120),
                        ],
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending_payment", "Pending Payment"),
                            ("scheduled", "Scheduled"),
                            ("in_progress", "In Progress"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("no_show", "No Show"),
                        ],
                        db_index=True,
                        default="pending_payment",
                        help_text="Lifecycle status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                (
                    "no_show_party",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="candidate or interviewer; empty when nobody reported it",
                        max_length=16,
                    ),
                ),
                ("price_in_cents", models.PositiveIntegerField()),
                ("platform_fee_in_cents", models.PositiveIntegerField()),
                ("interviewer_payout_in_cents", models.PositiveIntegerField()),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("unpaid", "Unpaid"),
                            ("paid", "Paid"),
                            ("refunded", "Refunded"),
                            ("partially_refunded", "Partially Refunded"),
                        ],
                        db_index=True,
                        default="unpaid",
                        max_length=32,
                    ),
                ),
                (
                    "payment_intent_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "refund_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Refund ID (re_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("refund_amount_in_cents", models.PositiveIntegerField(default=0)),
                ("refund_percentage", models.PositiveSmallIntegerField(default=0)),
                ("refund_reason", models.CharField(blank=True, default="", max_length=255)),
                ("package_credit_returned", models.BooleanField(default=False)),
                (
                    "payout_id",
                    models.UUIDField(
                        blank=True,
                        db_index=True,
                        help_text="Payout that claimed this session's earnings",
                        null=True,
                    ),
                ),
                (
                    "candidate",
                    models.ForeignKey(
                        help_text="User who booked the session",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="candidate_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "interviewer",
                    models.ForeignKey(
                        help_text="Expert running the session and receiving the payout",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="interviewer_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "coaching_package",
                    models.ForeignKey(
                        blank=True,
                        help_text="Package the session was paid from, if any",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sessions",
                        to="bookings.coachingpackage",
                    ),
                ),
            ],
            options={
                "verbose_name": "Expert Session",
                "verbose_name_plural": "Expert Sessions",
                "ordering": ["-scheduled_at"],
            },
        ),
        migrations.AddConstraint(
            model_name="coachingpackage",
            constraint=models.CheckConstraint(
                check=models.Q(
                    ("total_sessions", models.F("remaining_sessions") + models.F("used_sessions"))
                ),
                name="package_sessions_balance",
            ),
        ),
        migrations.AddConstraint(
            model_name="coachingpackage",
            constraint=models.CheckConstraint(
                check=models.Q(("remaining_sessions__gte", 0)),
                name="package_remaining_non_negative",
            ),
        ),
        migrations.AddIndex(
            model_name="expertsession",
            index=models.Index(
                fields=["interviewer", "status", "payment_status"],
                name="session_interviewer_state_idx",
            ),
        ),
        migrations.AddIndex(
            model_name="expertsession",
            index=models.Index(
                fields=["status", "scheduled_at"],
                name="session_status_schedule_idx",
            ),
        ),
        migrations.AddConstraint(
            model_name="expertsession",
            constraint=models.CheckConstraint(
                check=models.Q(
                    (
                        "price_in_cents",
                        models.F("platform_fee_in_cents") + models.F("interviewer_payout_in_cents"),
                    )
                ),
                name="session_price_split_balances",
            ),
        ),
        migrations.AddConstraint(
            model_name="expertsession",
            constraint=models.CheckConstraint(
                check=models.Q(
                    models.Q(("payment_status", "refunded"), _negated=True),
                    ("refund_amount_in_cents", models.F("price_in_cents")),
                    _connector="OR",
                ),
                name="session_refunded_means_full_amount",
            ),
        ),
        migrations.AddConstraint(
            model_name="expertsession",
            constraint=models.CheckConstraint(
                check=models.Q(
                    models.Q(("payment_status", "partially_refunded"), _negated=True),
                    models.Q(
                        ("refund_amount_in_cents__gt", 0),
                        ("refund_amount_in_cents__lt", models.F("price_in_cents")),
                    ),
                    _connector="OR",
                ),
                name="session_partial_refund_in_range",
            ),
        ),
        migrations.AddConstraint(
            model_name="expertsession",
            constraint=models.CheckConstraint(
                check=models.Q(
                    ("payout_id__isnull", True),
                    models.Q(("status", "completed"), ("payment_status", "paid")),
                    _connector="OR",
                ),
                name="session_payout_requires_completed_paid",
            ),
        ),
    ]
