"""
ConnectedAccount model for Stripe Connect payouts.

Each interviewer who wants to be paid has one ConnectedAccount. Payout
transfers are sent to its stripe_account_id.

Usage:
    from payments.models import ConnectedAccount

    account = ConnectedAccount.objects.get(user=interviewer)
    if account.is_ready_for_payouts:
        PayoutService.request_payout(interviewer.id)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ConnectedAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stripe Connect account receiving an interviewer's payouts.

    Fields:
        user: The interviewer this account pays out to
        stripe_account_id: Unique Stripe Account ID (acct_xxx)
        payouts_enabled: Whether Stripe has enabled payouts
        details_submitted: Whether onboarding was finished on Stripe
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="connected_account",
    )
    stripe_account_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Account ID (acct_xxx)",
    )
    payouts_enabled = models.BooleanField(default=False)
    details_submitted = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Connected Account"
        verbose_name_plural = "Connected Accounts"

    def __str__(self) -> str:
        return f"ConnectedAccount({self.stripe_account_id}, payouts={self.payouts_enabled})"

    @property
    def is_ready_for_payouts(self) -> bool:
        return self.details_submitted and self.payouts_enabled
