"""
Wallet ledger service: the only code path that changes a wallet balance.

Every mutation locks the wallet row, reads the current balance, writes one
WalletTransaction carrying balance_before/balance_after and the next
sequence number, then writes the new balance. Because each step runs under
the row lock inside one transaction, entries for a payee form a gapless
chain: entry N+1's balance_before equals entry N's balance_after.

Usage:
    from escrow.wallet.services import WalletLedger
    from escrow.wallet.types import LedgerEntryMeta

    WalletLedger.credit(
        firm_id,
        8500,
        LedgerEntryMeta(reference_type="payment", reference_id=str(payment.id)),
        owner_type=PayeeType.FIRM,
    )

    WalletLedger.debit(
        firm_id,
        1500,
        LedgerEntryMeta(reference_type="distribution", reference_id=str(dist.id)),
        owner_type=PayeeType.FIRM,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.core.paginator import Paginator
from django.db import IntegrityError, models, transaction
from django.db.models import Count, Q, Sum, Value
from django.db.models.functions import Coalesce

from core.exceptions import ValidationError

from escrow.exceptions import InsufficientFunds, NotFound
from escrow.state_machines import BALANCE_SIGN, PayeeType, WalletTransactionType
from escrow.wallet.models import WalletBalance, WalletTransaction
from escrow.wallet.types import LedgerEntryMeta

if TYPE_CHECKING:
    from collections.abc import Iterable

    from django.core.paginator import Page

logger = logging.getLogger(__name__)

CREDIT_TYPES = (
    WalletTransactionType.RECEIVED,
    WalletTransactionType.DISTRIBUTED,
)

DEBIT_TYPES = (
    WalletTransactionType.COMMISSION_DEDUCTED,
    WalletTransactionType.WITHDRAWAL_COMPLETED,
)


class WalletLedger:
    """
    Service class for wallet balance mutations and reads.

    Public primitives:
        credit / debit: Balance-changing entries
        reserve_payout / release_reservation / complete_withdrawal: Payout
            bookkeeping built on the same locked write path

    All methods are static or class methods - no instance state is kept.
    """

    # ==========================================================================
    # Wallet Lookup & Locking
    # ==========================================================================

    @staticmethod
    def get_or_create_wallet(
        owner_id: str,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
    ) -> WalletBalance:
        """Get the payee's wallet, creating an empty one on first use."""
        wallet, created = WalletBalance.objects.get_or_create(
            owner_type=owner_type,
            owner_id=str(owner_id),
        )
        if created:
            logger.info(
                "Wallet created",
                extra={"owner_type": owner_type, "owner_id": str(owner_id)},
            )
        return wallet

    @staticmethod
    def get_wallet(
        owner_id: str,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
    ) -> WalletBalance:
        """
        Get an existing wallet.

        Raises:
            NotFound: If the payee has no wallet yet
        """
        try:
            return WalletBalance.objects.get(owner_type=owner_type, owner_id=str(owner_id))
        except WalletBalance.DoesNotExist:
            raise NotFound(
                f"Wallet for {owner_type} {owner_id} not found",
                error_code="WALLET_NOT_FOUND",
                details={"owner_type": str(owner_type), "owner_id": str(owner_id)},
            )

    @classmethod
    def lock_wallets(
        cls, owners: Iterable[tuple[PayeeType | str, str]]
    ) -> dict[tuple[str, str], WalletBalance]:
        """
        Create (if needed) and row-lock several wallets in id order.

        Multi-wallet operations call this first so concurrent transactions
        always acquire wallet locks in the same order.

        Must run inside a transaction.
        """
        ids = {
            cls.get_or_create_wallet(owner_id, owner_type).pk
            for owner_type, owner_id in set(owners)
        }
        locked = WalletBalance.objects.select_for_update().filter(id__in=ids).order_by("id")
        return {(w.owner_type, w.owner_id): w for w in locked}

    @classmethod
    def _locked_wallet(cls, owner_id: str, owner_type: PayeeType | str) -> WalletBalance:
        wallet = cls.get_or_create_wallet(owner_id, owner_type)
        return WalletBalance.objects.select_for_update().get(pk=wallet.pk)

    # ==========================================================================
    # Balance Primitives
    # ==========================================================================

    @classmethod
    def credit(
        cls,
        owner_id: str,
        amount_cents: int,
        meta: LedgerEntryMeta | None = None,
        *,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
        transaction_type: WalletTransactionType = WalletTransactionType.RECEIVED,
    ) -> WalletTransaction:
        """
        Add money to a payee's wallet.

        Args:
            owner_id: Payee identifier
            amount_cents: Amount credited (net of any withholding)
            meta: Reference and tax data for the ledger entry
            owner_type: Professional or firm wallet
            transaction_type: RECEIVED or DISTRIBUTED

        Returns:
            The WalletTransaction written (or the existing one for a
            repeated idempotency key)
        """
        if transaction_type not in CREDIT_TYPES:
            raise ValueError(f"{transaction_type} is not a credit type")
        return cls._post(
            owner_id,
            owner_type,
            transaction_type,
            amount_cents,
            meta or LedgerEntryMeta(),
        )

    @classmethod
    def debit(
        cls,
        owner_id: str,
        amount_cents: int,
        meta: LedgerEntryMeta | None = None,
        *,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
        transaction_type: WalletTransactionType = WalletTransactionType.COMMISSION_DEDUCTED,
    ) -> WalletTransaction:
        """
        Take money out of a payee's wallet.

        Raises:
            InsufficientFunds: If amount_cents exceeds the current balance
        """
        if transaction_type not in DEBIT_TYPES:
            raise ValueError(f"{transaction_type} is not a debit type")
        return cls._post(
            owner_id,
            owner_type,
            transaction_type,
            amount_cents,
            meta or LedgerEntryMeta(),
        )

    @classmethod
    def reserve_payout(
        cls,
        wallet: WalletBalance,
        amount_cents: int,
        meta: LedgerEntryMeta,
    ) -> WalletTransaction:
        """
        Earmark funds for a payout request.

        Writes a zero-delta WITHDRAWAL_REQUESTED entry and raises
        pending_payouts; the balance itself moves only on completion.

        Raises:
            InsufficientFunds: If the amount exceeds balance minus pending payouts
        """
        return cls._post(
            wallet.owner_id,
            wallet.owner_type,
            WalletTransactionType.WITHDRAWAL_REQUESTED,
            amount_cents,
            meta,
            pending_delta=amount_cents,
        )

    @classmethod
    def release_reservation(cls, wallet: WalletBalance, amount_cents: int) -> WalletBalance:
        """Drop a payout reservation without touching the balance."""
        with transaction.atomic():
            locked = cls._locked_wallet(wallet.owner_id, wallet.owner_type)
            locked.pending_payouts_cents = max(0, locked.pending_payouts_cents - amount_cents)
            locked.save(update_fields=["pending_payouts_cents", "updated_at"])
        return locked

    @classmethod
    def complete_withdrawal(
        cls,
        wallet: WalletBalance,
        amount_cents: int,
        meta: LedgerEntryMeta,
    ) -> WalletTransaction:
        """
        Debit a completed payout and clear its reservation.

        Raises:
            InsufficientFunds: If the balance no longer covers the payout
        """
        return cls._post(
            wallet.owner_id,
            wallet.owner_type,
            WalletTransactionType.WITHDRAWAL_COMPLETED,
            amount_cents,
            meta,
            pending_delta=-amount_cents,
            withdrawn_delta=amount_cents,
        )

    @classmethod
    def _post(
        cls,
        owner_id: str,
        owner_type: PayeeType | str,
        transaction_type: WalletTransactionType,
        amount_cents: int,
        meta: LedgerEntryMeta,
        pending_delta: int = 0,
        withdrawn_delta: int = 0,
    ) -> WalletTransaction:
        """Write one ledger entry and the matching wallet update atomically."""
        if amount_cents <= 0:
            raise ValidationError(
                "Wallet amounts must be positive",
                details={"amount_cents": amount_cents},
            )

        with transaction.atomic():
            wallet = cls._locked_wallet(owner_id, owner_type)

            # Idempotency check under the wallet lock, before any mutation
            if meta.idempotency_key:
                existing = WalletTransaction.objects.filter(
                    idempotency_key=meta.idempotency_key
                ).first()
                if existing is not None:
                    logger.info(
                        "Duplicate wallet entry skipped",
                        extra={
                            "idempotency_key": meta.idempotency_key,
                            "wallet_id": str(wallet.id),
                        },
                    )
                    return existing

            sign = BALANCE_SIGN[transaction_type]
            balance_before = wallet.balance_cents
            balance_after = balance_before + sign * amount_cents

            if balance_after < 0:
                raise InsufficientFunds(
                    owner_id,
                    required=amount_cents,
                    available=balance_before,
                )
            if pending_delta > 0 and amount_cents > wallet.available_cents:
                raise InsufficientFunds(
                    owner_id,
                    required=amount_cents,
                    available=wallet.available_cents,
                )

            sequence = wallet.transaction_count + 1
            try:
                with transaction.atomic():
                    entry = WalletTransaction.objects.create(
                        wallet=wallet,
                        sequence=sequence,
                        type=transaction_type,
                        amount_cents=amount_cents,
                        balance_before_cents=balance_before,
                        balance_after_cents=balance_after,
                        tax_withheld_cents=meta.tax_withheld_cents,
                        net_amount_cents=amount_cents,
                        reference_type=meta.reference_type,
                        reference_id=meta.reference_id,
                        description=meta.description,
                        idempotency_key=meta.idempotency_key,
                    )
            except IntegrityError:
                # Same idempotency key committed by a concurrent writer
                if meta.idempotency_key:
                    return WalletTransaction.objects.get(
                        idempotency_key=meta.idempotency_key
                    )
                raise

            wallet.balance_cents = balance_after
            wallet.transaction_count = sequence
            update_fields = ["balance_cents", "transaction_count", "updated_at"]
            if sign > 0:
                wallet.total_earnings_cents += amount_cents
                update_fields.append("total_earnings_cents")
            if pending_delta:
                wallet.pending_payouts_cents = max(
                    0, wallet.pending_payouts_cents + pending_delta
                )
                update_fields.append("pending_payouts_cents")
            if withdrawn_delta:
                wallet.total_withdrawn_cents += withdrawn_delta
                update_fields.append("total_withdrawn_cents")
            wallet.save(update_fields=update_fields)

        logger.info(
            "Wallet entry recorded",
            extra={
                "wallet_id": str(wallet.id),
                "owner_id": str(owner_id),
                "type": str(transaction_type),
                "amount_cents": amount_cents,
                "balance_before_cents": balance_before,
                "balance_after_cents": balance_after,
                "reference_type": meta.reference_type,
                "reference_id": meta.reference_id,
            },
        )
        return entry

    # ==========================================================================
    # Reads
    # ==========================================================================

    @classmethod
    def get_transaction_history(
        cls,
        owner_id: str,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
        page: int = 1,
        page_size: int = 20,
        transaction_type: WalletTransactionType | str | None = None,
    ) -> Page:
        """
        Newest-first page of a payee's ledger entries.

        Returns:
            A django Paginator page; out-of-range pages return the last page
        """
        wallet = cls.get_wallet(owner_id, owner_type)
        entries = wallet.transactions.order_by("-sequence")
        if transaction_type:
            entries = entries.filter(type=transaction_type)
        return Paginator(entries, page_size).get_page(page)

    @classmethod
    def get_wallet_stats(
        cls,
        owner_id: str,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
    ) -> dict:
        """Summary counters for a payee's wallet."""
        wallet = cls.get_wallet(owner_id, owner_type)
        credits = Q(type__in=CREDIT_TYPES)
        totals = wallet.transactions.aggregate(
            transaction_count=Count("id"),
            total_received_cents=Coalesce(
                Sum("amount_cents", filter=credits),
                Value(0),
                output_field=models.BigIntegerField(),
            ),
            total_tax_withheld_cents=Coalesce(
                Sum("tax_withheld_cents", filter=credits),
                Value(0),
                output_field=models.BigIntegerField(),
            ),
        )
        return {
            "balance_cents": wallet.balance_cents,
            "available_cents": wallet.available_cents,
            "transaction_count": totals["transaction_count"],
            "total_received_cents": totals["total_received_cents"],
            "total_tax_withheld_cents": totals["total_tax_withheld_cents"],
            "total_withdrawn_cents": wallet.total_withdrawn_cents,
            "pending_payouts_cents": wallet.pending_payouts_cents,
        }

    @staticmethod
    def verify_chain(wallet: WalletBalance) -> bool:
        """
        Check a wallet's ledger for corruption.

        True when the entries form a gapless sequence, each entry's delta
        matches its type sign, each balance_before equals the previous
        balance_after, and the last balance_after equals the wallet balance.
        """
        previous_after = 0
        expected_sequence = 1
        for entry in wallet.transactions.order_by("sequence").iterator():
            sign = BALANCE_SIGN[entry.type]
            if (
                entry.sequence != expected_sequence
                or entry.balance_before_cents != previous_after
                or entry.balance_after_cents - entry.balance_before_cents
                != sign * entry.amount_cents
            ):
                logger.error(
                    "Wallet ledger chain broken",
                    extra={"wallet_id": str(wallet.id), "sequence": entry.sequence},
                )
                return False
            previous_after = entry.balance_after_cents
            expected_sequence += 1
        return previous_after == wallet.balance_cents
