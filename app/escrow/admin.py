"""
Escrow admin configuration.

Imports the wallet admin from its submodule and registers the remaining
escrow models. Money-moving state lives behind the service layer, so
payments, distributions, payouts and tax records are read-only here;
templates and platform settings are editable.
"""

from django.contrib import admin

from escrow.models import (
    Distribution,
    DistributionShare,
    DistributionTemplate,
    Payment,
    PayoutRequest,
    PlatformConfig,
    TaxRecord,
)
from escrow.wallet.admin import WalletBalanceAdmin, WalletTransactionAdmin

__all__ = [
    "WalletBalanceAdmin",
    "WalletTransactionAdmin",
    "PaymentAdmin",
    "DistributionAdmin",
    "DistributionTemplateAdmin",
    "PayoutRequestAdmin",
    "TaxRecordAdmin",
    "PlatformConfigAdmin",
]


class ReadOnlyAdminMixin:
    """Every field read-only; no add or delete."""

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for Payment.

    State changes go through EscrowService, not the admin.
    """

    list_display = [
        "id",
        "request_id",
        "payee_id",
        "payee_type",
        "amount_display",
        "status",
        "auto_release_at",
        "created_at",
    ]
    list_filter = ["status", "payee_type", "currency", "released_to_payee"]
    search_fields = ["id", "request_id", "client_id", "payee_id", "provider_payment_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Payment) -> str:
        """Display the amount formatted as currency."""
        return f"{obj.amount_cents / 100:.2f} {obj.currency.upper()}"

    amount_display.short_description = "Amount"


class DistributionShareInline(admin.TabularInline):
    """Inline display of shares for a distribution."""

    model = DistributionShare
    extra = 0
    readonly_fields = [
        "payee_id",
        "role",
        "percentage",
        "base_amount_cents",
        "bonus_amount_cents",
        "total_amount_cents",
        "tax_withheld_cents",
        "net_amount_cents",
        "approved",
        "approved_at",
    ]
    fields = readonly_fields
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Distribution)
class DistributionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "payment",
        "group_id",
        "mode",
        "distributable_amount_cents",
        "is_approved",
        "is_distributed",
        "created_at",
    ]
    list_filter = ["mode", "is_approved", "is_distributed", "requires_approval"]
    search_fields = ["id", "group_id", "payment__id", "payment__request_id"]
    list_select_related = ["payment"]
    ordering = ["-created_at"]
    inlines = [DistributionShareInline]


@admin.register(DistributionTemplate)
class DistributionTemplateAdmin(admin.ModelAdmin):
    """
    Admin configuration for DistributionTemplate.

    model.clean() enforces min <= default <= max on admin saves.
    """

    list_display = [
        "group_id",
        "role",
        "default_percentage",
        "min_percentage",
        "max_percentage",
        "is_active",
    ]
    list_filter = ["role", "is_active"]
    search_fields = ["group_id"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["group_id", "role"]


@admin.register(PayoutRequest)
class PayoutRequestAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for PayoutRequest.

    Approval and processing go through PayoutService.
    """

    list_display = [
        "id",
        "wallet",
        "amount_cents",
        "method",
        "status",
        "approved_by",
        "transaction_reference",
        "created_at",
    ]
    list_filter = ["status", "method", "created_at"]
    search_fields = ["id", "wallet__owner_id", "transaction_reference", "upi_id"]
    list_select_related = ["wallet"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(TaxRecord)
class TaxRecordAdmin(admin.ModelAdmin):
    """
    Admin configuration for TaxRecord.

    Only the certificate reference can be filled in after creation.
    """

    list_display = [
        "payee_id",
        "financial_year",
        "quarter",
        "taxable_amount_cents",
        "tax_amount_cents",
        "certificate_reference",
        "created_at",
    ]
    list_filter = ["financial_year", "quarter", "section"]
    search_fields = ["payee_id", "payment__id", "tax_identifier", "certificate_reference"]
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        return [
            field.name
            for field in self.model._meta.fields
            if field.name not in TaxRecord.mutable_fields
        ]

    def save_model(self, request, obj, form, change):
        if change:
            obj.save(update_fields=[*TaxRecord.mutable_fields, "updated_at"])
        else:
            super().save_model(request, obj, form, change)

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PlatformConfig)
class PlatformConfigAdmin(admin.ModelAdmin):
    """
    Admin configuration for PlatformConfig.

    Saving a row invalidates the cached platform policy.
    """

    list_display = [
        "id",
        "platform_fee_percent",
        "individual_platform_fee_percent",
        "tax_withholding_percent",
        "auto_release_days",
        "min_payout_amount_cents",
        "is_active",
        "updated_at",
    ]
    list_filter = ["is_active"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-updated_at"]
