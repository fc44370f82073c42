"""
Django admin configuration for wallet models.

WalletTransaction rows are append-only, so the admin offers no add, change
or delete for them. Balances change only through WalletLedger.
"""

from django.contrib import admin

from .models import WalletBalance, WalletTransaction


class WalletTransactionInline(admin.TabularInline):
    """Recent ledger entries on the wallet page."""

    model = WalletTransaction
    extra = 0
    fields = [
        "sequence",
        "type",
        "amount_cents",
        "balance_after_cents",
        "tax_withheld_cents",
        "reference_type",
        "reference_id",
        "created_at",
    ]
    readonly_fields = fields
    ordering = ["-sequence"]
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WalletBalance)
class WalletBalanceAdmin(admin.ModelAdmin):
    """
    Admin configuration for WalletBalance.

    Read-only view of payee balances and their ledger.
    """

    list_display = [
        "owner_id",
        "owner_type",
        "balance_display",
        "pending_payouts_cents",
        "transaction_count",
        "updated_at",
    ]
    list_filter = ["owner_type", "currency"]
    search_fields = ["id", "owner_id"]
    readonly_fields = [
        "id",
        "owner_type",
        "owner_id",
        "balance_cents",
        "total_earnings_cents",
        "total_withdrawn_cents",
        "pending_payouts_cents",
        "transaction_count",
        "currency",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-updated_at"]
    inlines = [WalletTransactionInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "owner_type", "owner_id", "tax_identifier"),
            },
        ),
        (
            "Balance",
            {
                "fields": (
                    "balance_cents",
                    "pending_payouts_cents",
                    "total_earnings_cents",
                    "total_withdrawn_cents",
                    "currency",
                ),
            },
        ),
        (
            "Bookkeeping",
            {
                "fields": ("transaction_count", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def balance_display(self, obj: WalletBalance) -> str:
        return f"{obj.balance_cents / 100:.2f} {obj.currency.upper()}"

    balance_display.short_description = "Balance"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for WalletTransaction.

    Entries are immutable - no add, change, or delete permissions.
    """

    list_display = [
        "wallet",
        "sequence",
        "type",
        "amount_cents",
        "balance_before_cents",
        "balance_after_cents",
        "reference_type",
        "created_at",
    ]
    list_filter = ["type", "reference_type", "created_at"]
    search_fields = ["id", "wallet__owner_id", "reference_id", "idempotency_key"]
    list_select_related = ["wallet"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
