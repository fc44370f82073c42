"""
Wallet models: mutable balances backed by an append-only transaction log.

- WalletBalance: one per (owner type, owner id); the only mutable money scalar
- WalletTransaction: immutable ledger entry written with every balance change

Every balance mutation goes through escrow.wallet.services.WalletLedger,
which writes exactly one WalletTransaction per change.

Usage:
    from escrow.wallet.models import WalletBalance, WalletTransaction

    wallet = WalletBalance.objects.get(owner_type=PayeeType.FIRM, owner_id=firm_id)
    history = wallet.transactions.order_by("sequence")
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import ImmutableMixin, UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from escrow.state_machines import PayeeType, WalletTransactionType


class WalletBalance(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Current balance and running totals for one payee.

    Fields:
        balance_cents: Spendable balance
        total_earnings_cents: Sum of all credits ever received
        total_withdrawn_cents: Sum of completed payouts
        pending_payouts_cents: Amount reserved by open payout requests
        transaction_count: Sequence number of the latest ledger entry
        tax_identifier: Payee tax id (PAN) copied onto tax records
    """

    owner_type = models.CharField(
        max_length=20,
        choices=PayeeType.choices,
        help_text="Whether the wallet belongs to a professional or a firm",
    )

    owner_id = models.CharField(
        max_length=64,
        help_text="Identifier of the professional or firm",
    )

    balance_cents = models.BigIntegerField(
        default=0,
        help_text="Current spendable balance in smallest currency unit",
    )

    total_earnings_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Lifetime credits to this wallet",
    )

    total_withdrawn_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Lifetime completed withdrawals",
    )

    pending_payouts_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount reserved by payout requests not yet completed",
    )

    transaction_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of ledger entries; the next entry's sequence is this plus one",
    )

    currency = models.CharField(
        max_length=3,
        default="inr",
        help_text="ISO 4217 currency code (lowercase)",
    )

    tax_identifier = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Permanent account number used on tax records",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Wallet Balance"
        verbose_name_plural = "Wallet Balances"
        constraints = [
            models.UniqueConstraint(
                fields=["owner_type", "owner_id"],
                name="unique_wallet_per_owner",
            ),
            models.CheckConstraint(
                condition=models.Q(balance_cents__gte=0),
                name="wallet_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"WalletBalance({self.owner_type}:{self.owner_id}, {self.balance_cents})"

    @property
    def available_cents(self) -> int:
        """Balance not already reserved by pending payouts."""
        return self.balance_cents - self.pending_payouts_cents


class WalletTransaction(UUIDPrimaryKeyMixin, ImmutableMixin, BaseModel):
    """
    Immutable ledger entry for one wallet mutation.

    Invariants:
        - balance_after - balance_before == sign(type) * amount
        - for consecutive sequences on one wallet, balance_before of entry
          N+1 equals balance_after of entry N
    """

    wallet = models.ForeignKey(
        WalletBalance,
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Wallet this entry belongs to",
    )

    sequence = models.PositiveIntegerField(
        help_text="Position of this entry in the wallet's history, starting at 1",
    )

    type = models.CharField(
        max_length=30,
        choices=WalletTransactionType.choices,
        help_text="Kind of movement; determines the balance sign",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount of the movement (always positive)",
    )

    balance_before_cents = models.BigIntegerField(
        help_text="Wallet balance immediately before this entry",
    )

    balance_after_cents = models.BigIntegerField(
        help_text="Wallet balance immediately after this entry",
    )

    tax_withheld_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Withholding deducted before crediting",
    )

    net_amount_cents = models.PositiveBigIntegerField(
        help_text="Amount net of withholding",
    )

    reference_type = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Type of related entity (e.g., 'payment', 'distribution', 'payout')",
    )

    reference_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        db_index=True,
        help_text="Identifier of related entity",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description of this entry",
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Unique key to prevent duplicate entries",
    )

    class Meta:
        ordering = ["wallet", "sequence"]
        verbose_name = "Wallet Transaction"
        verbose_name_plural = "Wallet Transactions"
        indexes = [
            models.Index(fields=["reference_type", "reference_id"], name="escrow_wtx_reference_idx"),
            models.Index(fields=["type"], name="escrow_wtx_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["wallet", "sequence"],
                name="unique_wallet_transaction_sequence",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()}: {self.amount_cents} cents"
