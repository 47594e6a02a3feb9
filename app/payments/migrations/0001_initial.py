import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


def _timestamps():
    return [
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
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ConnectedAccount",
            fields=_timestamps()
            + [
                (
                    "stripe_account_id",
                    models.CharField(
                        help_text="Stripe Account ID (acct_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("payouts_enabled", models.BooleanField(default=False)),
                ("details_submitted", models.BooleanField(default=False)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="connected_account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Connected Account",
                "verbose_name_plural": "Connected Accounts",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=_timestamps()
            + [
                ("amount_cents", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("sessions_included", models.JSONField(default=list)),
                (
                    "stripe_transfer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Transfer ID (tr_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                (
                    "interviewer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "connected_account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="payments.connectedaccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["interviewer", "status"],
                        name="payout_interviewer_status_idx",
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(("amount_cents__gt", 0)),
                        name="payout_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ReconciliationRecord",
            fields=_timestamps()
            + [
                (
                    "operation",
                    models.CharField(
                        choices=[
                            ("refund", "Refund"),
                            ("payout_transfer", "Payout Transfer"),
                        ],
                        db_index=True,
                        max_length=32,
                    ),
                ),
                ("external_idempotency_key", models.CharField(max_length=255, unique=True)),
                ("external_id", models.CharField(blank=True, max_length=255, null=True)),
                ("amount_cents", models.PositiveBigIntegerField()),
                (
                    "gateway_status",
                    models.CharField(
                        choices=[
                            ("not_attempted", "Not Attempted"),
                            ("sent", "Sent"),
                            ("confirmed", "Confirmed"),
                        ],
                        db_index=True,
                        default="not_attempted",
                        max_length=16,
                    ),
                ),
                (
                    "local_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("applied", "Applied"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True, default="")),
                ("applied_at", models.DateTimeField(blank=True, null=True)),
                (
                    "session",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reconciliation_records",
                        to="bookings.expertsession",
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reconciliation_records",
                        to="payments.payout",
                    ),
                ),
            ],
            options={
                "verbose_name": "Reconciliation Record",
                "verbose_name_plural": "Reconciliation Records",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["gateway_status", "local_status"],
                        name="recon_record_status_idx",
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(
                            models.Q(("operation", "refund"), ("session__isnull", False)),
                            models.Q(
                                ("operation", "payout_transfer"),
                                ("payout__isnull", False),
                            ),
                            _connector="OR",
                        ),
                        name="reconciliation_record_has_subject",
                    )
                ],
            },
        ),
    ]
