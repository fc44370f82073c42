"""
Tests for WalletLedger.

Covers the credit/debit primitives, idempotency keys, payout reservation
bookkeeping, history reads and chain verification.
"""

import pytest

from core.exceptions import ValidationError
from escrow.exceptions import InsufficientFunds, NotFound
from escrow.models import WalletBalance, WalletTransaction
from escrow.state_machines import PayeeType, WalletTransactionType
from escrow.wallet.services import WalletLedger
from escrow.wallet.types import LedgerEntryMeta, percent_of, to_percentage


class TestMoneyHelpers:
    def test_percent_of_rounds_half_up(self):
        assert percent_of(333, 50) == 167
        assert percent_of(8500, "60") == 5100

    def test_to_percentage_quantizes(self):
        assert str(to_percentage(33.333)) == "33.33"
        assert str(to_percentage("12.345")) == "12.35"

    def test_meta_rejects_negative_tax(self):
        with pytest.raises(ValueError):
            LedgerEntryMeta(tax_withheld_cents=-1)


@pytest.mark.django_db
class TestCreditDebit:
    """Tests for credit and debit."""

    def test_credit_creates_wallet_and_entry(self):
        entry = WalletLedger.credit(
            "pro-1",
            4590,
            LedgerEntryMeta(reference_type="payment", reference_id="p-1", tax_withheld_cents=510),
        )

        wallet = WalletLedger.get_wallet("pro-1")
        assert wallet.balance_cents == 4590
        assert wallet.total_earnings_cents == 4590
        assert wallet.transaction_count == 1
        assert entry.sequence == 1
        assert entry.balance_before_cents == 0
        assert entry.balance_after_cents == 4590
        assert entry.tax_withheld_cents == 510
        assert entry.type == WalletTransactionType.RECEIVED

    def test_debit_reduces_balance(self):
        WalletLedger.credit("firm-1", 8500, owner_type=PayeeType.FIRM)

        entry = WalletLedger.debit("firm-1", 1500, owner_type=PayeeType.FIRM)

        assert entry.type == WalletTransactionType.COMMISSION_DEDUCTED
        assert entry.balance_after_cents == 7000
        wallet = WalletLedger.get_wallet("firm-1", PayeeType.FIRM)
        assert wallet.balance_cents == 7000
        assert wallet.total_earnings_cents == 8500

    def test_debit_beyond_balance(self):
        WalletLedger.credit("pro-1", 1000)

        with pytest.raises(InsufficientFunds) as exc_info:
            WalletLedger.debit("pro-1", 1001)

        assert exc_info.value.required == 1001
        assert exc_info.value.available == 1000
        assert WalletLedger.get_wallet("pro-1").balance_cents == 1000

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amounts(self, amount):
        with pytest.raises(ValidationError):
            WalletLedger.credit("pro-1", amount)

    def test_wrong_direction_type(self):
        with pytest.raises(ValueError):
            WalletLedger.credit(
                "pro-1", 100, transaction_type=WalletTransactionType.COMMISSION_DEDUCTED
            )
        with pytest.raises(ValueError):
            WalletLedger.debit("pro-1", 100, transaction_type=WalletTransactionType.RECEIVED)

    def test_idempotency_key_writes_once(self):
        meta = LedgerEntryMeta(idempotency_key="release:abc")

        first = WalletLedger.credit("pro-1", 500, meta)
        second = WalletLedger.credit("pro-1", 500, meta)

        assert first.pk == second.pk
        assert WalletLedger.get_wallet("pro-1").balance_cents == 500

    def test_wallets_are_separate_per_owner_type(self):
        WalletLedger.credit("acme", 100, owner_type=PayeeType.FIRM)
        WalletLedger.credit("acme", 200)

        assert WalletBalance.objects.filter(owner_id="acme").count() == 2

    def test_get_wallet_missing(self):
        with pytest.raises(NotFound) as exc_info:
            WalletLedger.get_wallet("nobody")

        assert exc_info.value.error_code == "WALLET_NOT_FOUND"

    def test_lock_wallets_creates_missing(self):
        wallets = WalletLedger.lock_wallets(
            [(PayeeType.FIRM, "firm-1"), (PayeeType.PROFESSIONAL, "pro-1")]
        )

        assert set(wallets) == {(PayeeType.FIRM, "firm-1"), (PayeeType.PROFESSIONAL, "pro-1")}


@pytest.mark.django_db
class TestPayoutBookkeeping:
    """Tests for reserve_payout, release_reservation and complete_withdrawal."""

    @pytest.fixture
    def wallet(self):
        WalletLedger.credit("pro-1", 10000)
        return WalletLedger.get_wallet("pro-1")

    def test_reserve_keeps_balance(self, wallet):
        entry = WalletLedger.reserve_payout(wallet, 4000, LedgerEntryMeta())

        wallet = WalletLedger.get_wallet("pro-1")
        assert entry.balance_after_cents == 10000
        assert wallet.pending_payouts_cents == 4000
        assert wallet.available_cents == 6000

    def test_reserve_beyond_available(self, wallet):
        WalletLedger.reserve_payout(wallet, 8000, LedgerEntryMeta())

        with pytest.raises(InsufficientFunds):
            WalletLedger.reserve_payout(wallet, 3000, LedgerEntryMeta())

    def test_release_reservation(self, wallet):
        WalletLedger.reserve_payout(wallet, 4000, LedgerEntryMeta())

        released = WalletLedger.release_reservation(wallet, 4000)

        assert released.pending_payouts_cents == 0
        assert released.balance_cents == 10000

    def test_complete_withdrawal(self, wallet):
        WalletLedger.reserve_payout(wallet, 4000, LedgerEntryMeta())

        WalletLedger.complete_withdrawal(wallet, 4000, LedgerEntryMeta())

        wallet = WalletLedger.get_wallet("pro-1")
        assert wallet.balance_cents == 6000
        assert wallet.pending_payouts_cents == 0
        assert wallet.total_withdrawn_cents == 4000
        assert WalletLedger.verify_chain(wallet)


@pytest.mark.django_db
class TestReads:
    """Tests for history, stats and chain verification."""

    @pytest.fixture
    def history(self):
        WalletLedger.credit("pro-1", 4590, LedgerEntryMeta(tax_withheld_cents=510))
        WalletLedger.credit(
            "pro-1",
            3060,
            LedgerEntryMeta(tax_withheld_cents=340),
            transaction_type=WalletTransactionType.DISTRIBUTED,
        )
        WalletLedger.debit("pro-1", 650)
        return WalletLedger.get_wallet("pro-1")

    def test_history_is_newest_first(self, history):
        page = WalletLedger.get_transaction_history("pro-1", page_size=2)

        assert [e.sequence for e in page] == [3, 2]
        assert page.paginator.count == 3
        assert page.has_next()

    def test_history_by_type(self, history):
        page = WalletLedger.get_transaction_history(
            "pro-1", transaction_type=WalletTransactionType.DISTRIBUTED
        )

        assert [e.amount_cents for e in page] == [3060]

    def test_stats(self, history):
        stats = WalletLedger.get_wallet_stats("pro-1")

        assert stats["balance_cents"] == 7000
        assert stats["transaction_count"] == 3
        assert stats["total_received_cents"] == 7650
        assert stats["total_tax_withheld_cents"] == 850
        assert stats["pending_payouts_cents"] == 0

    def test_verify_chain_detects_tampering(self, history):
        assert WalletLedger.verify_chain(history) is True

        # Bypass the immutability guard to simulate corruption
        WalletTransaction.objects.filter(wallet=history, sequence=2).update(
            balance_after_cents=9999
        )

        assert WalletLedger.verify_chain(history) is False

    def test_verify_chain_detects_balance_drift(self, history):
        WalletBalance.objects.filter(pk=history.pk).update(balance_cents=1)

        assert WalletLedger.verify_chain(WalletLedger.get_wallet("pro-1")) is False
