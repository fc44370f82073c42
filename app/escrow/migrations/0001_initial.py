import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models

PAYMENT_STATUS_CHOICES = [
    ("captured", "Captured"),
    ("escrow_held", "Escrow Held"),
    ("pending_release", "Pending Release"),
    ("completed", "Completed"),
    ("refunded", "Refunded"),
    ("partially_refunded", "Partially Refunded"),
    ("dispute_held", "Dispute Held"),
]

PAYOUT_STATUS_CHOICES = [
    ("requested", "Requested"),
    ("approved", "Approved"),
    ("processing", "Processing"),
    ("completed", "Completed"),
    ("rejected", "Rejected"),
]

PAYEE_TYPE_CHOICES = [("professional", "Professional"), ("firm", "Firm")]

FIRM_ROLE_CHOICES = [
    ("firm_admin", "Firm Admin"),
    ("senior_ca", "Senior CA"),
    ("junior_ca", "Junior CA"),
    ("consultant", "Consultant"),
]

PAYOUT_METHOD_CHOICES = [
    ("bank_transfer", "Bank Transfer"),
    ("upi", "UPI"),
    ("neft", "NEFT"),
    ("rtgs", "RTGS"),
    ("imps", "IMPS"),
]

WALLET_TRANSACTION_TYPE_CHOICES = [
    ("received", "Received"),
    ("distributed", "Distributed"),
    ("commission_deducted", "Commission Deducted"),
    ("withdrawal_requested", "Withdrawal Requested"),
    ("withdrawal_completed", "Withdrawal Completed"),
]


def uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def timestamps():
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
    ]


def version():
    return (
        "version",
        models.PositiveIntegerField(
            default=1,
            help_text="Version for optimistic locking - incremented on each save",
        ),
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                uuid_pk(),
                *timestamps(),
                version(),
                ("request_id", models.UUIDField(default=uuid.uuid4, help_text="Unit of work this payment pays for", unique=True)),
                ("client_id", models.CharField(db_index=True, help_text="Identifier of the paying client", max_length=64)),
                ("payee_id", models.CharField(db_index=True, help_text="Professional or firm the payment is owed to", max_length=64)),
                ("payee_type", models.CharField(choices=PAYEE_TYPE_CHOICES, default="professional", help_text="Whether the payee is an individual professional or a firm", max_length=20)),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Captured amount in smallest currency unit")),
                ("currency", models.CharField(default="inr", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("platform_fee_cents", models.PositiveBigIntegerField(default=0, help_text="Platform commission taken at release")),
                ("status", django_fsm.FSMField(choices=PAYMENT_STATUS_CHOICES, db_index=True, default="captured", help_text="Current custody state (managed by FSM)", max_length=50, protected=True)),
                ("provider_payment_id", models.CharField(help_text="Gateway payment identifier returned by capture", max_length=255, unique=True)),
                ("provider_reference", models.CharField(blank=True, default="", help_text="Gateway reference recorded when funds were put on hold", max_length=255)),
                ("captured_at", models.DateTimeField(default=django.utils.timezone.now, help_text="When the gateway confirmed capture")),
                ("escrow_held_at", models.DateTimeField(blank=True, help_text="When funds entered escrow", null=True)),
                ("auto_release_at", models.DateTimeField(blank=True, db_index=True, help_text="Deadline after which the sweep releases funds. Null disables it", null=True)),
                ("released_to_payee", models.BooleanField(default=False, help_text="Whether funds have been released to the payee side")),
                ("released_at", models.DateTimeField(blank=True, help_text="When the release happened", null=True)),
                ("release_approved_by", models.CharField(blank=True, help_text="Actor who released the funds. Null for system auto-release", max_length=64, null=True)),
                ("released_amount_cents", models.PositiveBigIntegerField(blank=True, help_text="Amount credited to the payee side at release, after commission", null=True)),
                ("completed_at", models.DateTimeField(blank=True, help_text="When the release was settled", null=True)),
                ("dispute_reason", models.TextField(blank=True, default="", help_text="Why the payment was put on dispute hold")),
                ("disputed_at", models.DateTimeField(blank=True, help_text="When the dispute hold started", null=True)),
                ("refund_amount_cents", models.PositiveBigIntegerField(blank=True, help_text="Refund before processing fee", null=True)),
                ("refund_percentage", models.DecimalField(blank=True, decimal_places=2, help_text="Percentage of the original amount refunded", max_digits=5, null=True)),
                ("refund_reason", models.TextField(blank=True, help_text="Reason given for the refund", null=True)),
                ("processing_fee_cents", models.PositiveBigIntegerField(blank=True, help_text="Fee retained from the refund", null=True)),
                ("final_refund_amount_cents", models.PositiveBigIntegerField(blank=True, help_text="Amount actually returned to the client", null=True)),
                ("provider_refund_id", models.CharField(blank=True, help_text="Gateway refund identifier", max_length=255, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, help_text="When the refund was executed", null=True)),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "auto_release_at"], name="escrow_pay_status_release_idx"),
                    models.Index(fields=["client_id", "status"], name="escrow_pay_client_status_idx"),
                    models.Index(fields=["payee_id", "status"], name="escrow_pay_payee_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount_cents__gt=0), name="escrow_payment_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PlatformConfig",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("platform_fee_percent", models.DecimalField(decimal_places=2, default=Decimal("15"), help_text="Commission on payments to firms", max_digits=5)),
                ("individual_platform_fee_percent", models.DecimalField(decimal_places=2, default=Decimal("10"), help_text="Commission on payments to individual professionals", max_digits=5)),
                ("tax_withholding_percent", models.DecimalField(decimal_places=2, default=Decimal("10"), help_text="Withholding on professional fees", max_digits=5)),
                ("auto_release_days", models.PositiveIntegerField(default=7, help_text="Days funds stay held before auto-release")),
                ("min_payout_amount_cents", models.PositiveBigIntegerField(default=1000, help_text="Smallest payout a payee may request")),
                ("refund_processing_fee_percent", models.DecimalField(decimal_places=2, default=Decimal("2"), help_text="Refund processing fee rate", max_digits=5)),
                ("refund_processing_fee_min_cents", models.PositiveBigIntegerField(default=10, help_text="Lower clamp for the refund processing fee")),
                ("refund_processing_fee_max_cents", models.PositiveBigIntegerField(default=100, help_text="Upper clamp for the refund processing fee")),
                ("is_active", models.BooleanField(default=True, help_text="Only the newest active row applies")),
            ],
            options={
                "verbose_name": "Platform Config",
                "verbose_name_plural": "Platform Config",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WalletBalance",
            fields=[
                uuid_pk(),
                *timestamps(),
                version(),
                ("owner_type", models.CharField(choices=PAYEE_TYPE_CHOICES, help_text="Whether the wallet belongs to a professional or a firm", max_length=20)),
                ("owner_id", models.CharField(help_text="Identifier of the professional or firm", max_length=64)),
                ("balance_cents", models.BigIntegerField(default=0, help_text="Current spendable balance in smallest currency unit")),
                ("total_earnings_cents", models.PositiveBigIntegerField(default=0, help_text="Lifetime credits to this wallet")),
                ("total_withdrawn_cents", models.PositiveBigIntegerField(default=0, help_text="Lifetime completed withdrawals")),
                ("pending_payouts_cents", models.PositiveBigIntegerField(default=0, help_text="Amount reserved by payout requests not yet completed")),
                ("transaction_count", models.PositiveIntegerField(default=0, help_text="Number of ledger entries; the next entry's sequence is this plus one")),
                ("currency", models.CharField(default="inr", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("tax_identifier", models.CharField(blank=True, default="", help_text="Permanent account number used on tax records", max_length=20)),
            ],
            options={
                "verbose_name": "Wallet Balance",
                "verbose_name_plural": "Wallet Balances",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("owner_type", "owner_id"), name="unique_wallet_per_owner"),
                    models.CheckConstraint(condition=models.Q(balance_cents__gte=0), name="wallet_balance_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DistributionTemplate",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("group_id", models.CharField(db_index=True, help_text="Firm this template applies to", max_length=64)),
                ("role", models.CharField(choices=FIRM_ROLE_CHOICES, help_text="Role the percentage applies to", max_length=20)),
                ("default_percentage", models.DecimalField(decimal_places=2, help_text="Percentage assigned to payees holding this role", max_digits=5)),
                ("min_percentage", models.DecimalField(decimal_places=2, default=Decimal("0"), help_text="Lowest percentage this role may be given", max_digits=5)),
                ("max_percentage", models.DecimalField(decimal_places=2, default=Decimal("100"), help_text="Highest percentage this role may be given", max_digits=5)),
                ("is_active", models.BooleanField(default=True, help_text="Inactive templates are ignored by template mode")),
            ],
            options={
                "verbose_name": "Distribution Template",
                "verbose_name_plural": "Distribution Templates",
                "ordering": ["group_id", "role"],
                "constraints": [
                    models.UniqueConstraint(fields=("group_id", "role"), name="unique_template_per_group_role"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Distribution",
            fields=[
                uuid_pk(),
                *timestamps(),
                version(),
                ("group_id", models.CharField(db_index=True, help_text="Firm whose wallet receives the gross amount", max_length=64)),
                ("mode", models.CharField(choices=[("template", "Template"), ("custom", "Custom")], help_text="Whether shares came from templates or were supplied explicitly", max_length=20)),
                ("total_amount_cents", models.PositiveBigIntegerField(help_text="Payment amount being split")),
                ("commission_percent", models.DecimalField(decimal_places=2, help_text="Commission rate applied to the total", max_digits=5)),
                ("platform_commission_cents", models.PositiveBigIntegerField(help_text="Commission retained by the platform")),
                ("distributable_amount_cents", models.PositiveBigIntegerField(help_text="Total minus platform commission")),
                ("early_completion_bonus_cents", models.PositiveBigIntegerField(default=0, help_text="Bonus for finishing ahead of schedule")),
                ("quality_bonus_cents", models.PositiveBigIntegerField(default=0, help_text="Bonus for a high quality rating")),
                ("referral_bonus_cents", models.PositiveBigIntegerField(default=0, help_text="Bonus for bringing in the client")),
                ("bonus_pool_cents", models.PositiveBigIntegerField(default=0, help_text="Sum of all bonuses, spread over shares by percentage")),
                ("requires_approval", models.BooleanField(default=False, help_text="Whether every payee must approve their share before execution")),
                ("is_approved", models.BooleanField(default=False, help_text="Set when the last outstanding share is approved")),
                ("approved_at", models.DateTimeField(blank=True, help_text="When the distribution became fully approved", null=True)),
                ("is_distributed", models.BooleanField(db_index=True, default=False, help_text="Whether the split has been credited to wallets")),
                ("distributed_at", models.DateTimeField(blank=True, help_text="When wallets were credited", null=True)),
                ("payment", models.OneToOneField(help_text="Payment whose proceeds are split", on_delete=django.db.models.deletion.PROTECT, related_name="distribution", to="escrow.payment")),
            ],
            options={
                "verbose_name": "Distribution",
                "verbose_name_plural": "Distributions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["group_id", "is_distributed"], name="escrow_dist_group_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DistributionShare",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("payee_id", models.CharField(db_index=True, help_text="Professional receiving this share", max_length=64)),
                ("role", models.CharField(blank=True, choices=FIRM_ROLE_CHOICES, help_text="Firm role used for template lookups", max_length=20, null=True)),
                ("percentage", models.DecimalField(decimal_places=2, help_text="Percentage of the distributable amount", max_digits=5)),
                ("base_amount_cents", models.PositiveBigIntegerField(help_text="Distributable amount x percentage")),
                ("bonus_amount_cents", models.PositiveBigIntegerField(default=0, help_text="This share's part of the bonus pool")),
                ("total_amount_cents", models.PositiveBigIntegerField(help_text="Base plus bonus, before withholding")),
                ("tax_withheld_cents", models.PositiveBigIntegerField(default=0, help_text="Withholding deducted at execution")),
                ("net_amount_cents", models.PositiveBigIntegerField(default=0, help_text="Amount credited to the payee wallet at execution")),
                ("contribution_hours", models.DecimalField(blank=True, decimal_places=2, help_text="Hours the payee reported working on the request", max_digits=8, null=True)),
                ("approved", models.BooleanField(default=False, help_text="Whether the payee accepted this share")),
                ("approved_at", models.DateTimeField(blank=True, help_text="When the payee accepted", null=True)),
                ("signature", models.CharField(blank=True, default="", help_text="Approval signature supplied by the payee", max_length=255)),
                ("distribution", models.ForeignKey(help_text="Distribution this share belongs to", on_delete=django.db.models.deletion.CASCADE, related_name="shares", to="escrow.distribution")),
            ],
            options={
                "verbose_name": "Distribution Share",
                "verbose_name_plural": "Distribution Shares",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("distribution", "payee_id"), name="unique_share_per_payee"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutRequest",
            fields=[
                uuid_pk(),
                *timestamps(),
                version(),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Requested withdrawal in smallest currency unit")),
                ("status", django_fsm.FSMField(choices=PAYOUT_STATUS_CHOICES, db_index=True, default="requested", help_text="Current state of the request (managed by FSM)", max_length=50, protected=True)),
                ("method", models.CharField(choices=PAYOUT_METHOD_CHOICES, help_text="Payout rail", max_length=20)),
                ("account_holder_name", models.CharField(blank=True, default="", help_text="Name on the destination bank account", max_length=255)),
                ("account_number", models.CharField(blank=True, default="", help_text="Destination bank account number", max_length=34)),
                ("ifsc_code", models.CharField(blank=True, default="", help_text="Destination bank branch code", max_length=11)),
                ("bank_name", models.CharField(blank=True, default="", help_text="Destination bank name", max_length=255)),
                ("upi_id", models.CharField(blank=True, default="", help_text="Destination UPI address", max_length=255)),
                ("approved_by", models.CharField(blank=True, help_text="Operator who approved the request", max_length=64, null=True)),
                ("approved_at", models.DateTimeField(blank=True, help_text="When the request was approved", null=True)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When the money was sent", null=True)),
                ("transaction_reference", models.CharField(blank=True, help_text="Bank or rail reference of the transfer", max_length=255, null=True)),
                ("rejection_reason", models.TextField(blank=True, help_text="Why the request was rejected", null=True)),
                ("rejected_at", models.DateTimeField(blank=True, help_text="When the request was rejected", null=True)),
                ("notes", models.TextField(blank=True, default="", help_text="Free-form notes from the payee")),
                ("wallet", models.ForeignKey(help_text="Wallet the money is withdrawn from", on_delete=django.db.models.deletion.PROTECT, related_name="payout_requests", to="escrow.walletbalance")),
            ],
            options={
                "verbose_name": "Payout Request",
                "verbose_name_plural": "Payout Requests",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["wallet", "status"], name="escrow_payout_wallet_idx"),
                    models.Index(fields=["status", "approved_at"], name="escrow_payout_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount_cents__gt=0), name="payout_request_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TaxRecord",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("payee_id", models.CharField(db_index=True, help_text="Professional the tax was withheld from", max_length=64)),
                ("section", models.CharField(default="194J", help_text="Statutory section the withholding falls under", max_length=10)),
                ("taxable_amount_cents", models.PositiveBigIntegerField(help_text="Gross amount before withholding")),
                ("tax_rate", models.DecimalField(decimal_places=2, help_text="Withholding rate in percent", max_digits=5)),
                ("tax_amount_cents", models.PositiveBigIntegerField(help_text="Amount withheld")),
                ("net_amount_cents", models.PositiveBigIntegerField(help_text="Amount credited after withholding")),
                ("financial_year", models.CharField(db_index=True, help_text="Financial year label, April to March", max_length=12)),
                ("quarter", models.CharField(help_text="Quarter of the financial year (Q1-Q4)", max_length=2)),
                ("tax_identifier", models.CharField(blank=True, default="", help_text="Payee PAN at the time of withholding", max_length=20)),
                ("certificate_reference", models.CharField(blank=True, default="", help_text="Reference of the issued withholding certificate", max_length=255)),
                ("payment", models.ForeignKey(help_text="Payment the taxable income came from", on_delete=django.db.models.deletion.PROTECT, related_name="tax_records", to="escrow.payment")),
                ("share", models.OneToOneField(blank=True, help_text="Distribution share this record belongs to. Null for direct release", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="tax_record", to="escrow.distributionshare")),
            ],
            options={
                "verbose_name": "Tax Record",
                "verbose_name_plural": "Tax Records",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["payee_id", "financial_year", "quarter"], name="escrow_tax_payee_period_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WalletTransaction",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("sequence", models.PositiveIntegerField(help_text="Position of this entry in the wallet's history, starting at 1")),
                ("type", models.CharField(choices=WALLET_TRANSACTION_TYPE_CHOICES, help_text="Kind of movement; determines the balance sign", max_length=30)),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Amount of the movement (always positive)")),
                ("balance_before_cents", models.BigIntegerField(help_text="Wallet balance immediately before this entry")),
                ("balance_after_cents", models.BigIntegerField(help_text="Wallet balance immediately after this entry")),
                ("tax_withheld_cents", models.PositiveBigIntegerField(default=0, help_text="Withholding deducted before crediting")),
                ("net_amount_cents", models.PositiveBigIntegerField(help_text="Amount net of withholding")),
                ("reference_type", models.CharField(blank=True, default="", help_text="Type of related entity (e.g., 'payment', 'distribution', 'payout')", max_length=50)),
                ("reference_id", models.CharField(blank=True, db_index=True, default="", help_text="Identifier of related entity", max_length=64)),
                ("description", models.TextField(blank=True, default="", help_text="Human-readable description of this entry")),
                ("idempotency_key", models.CharField(blank=True, help_text="Unique key to prevent duplicate entries", max_length=255, null=True, unique=True)),
                ("wallet", models.ForeignKey(help_text="Wallet this entry belongs to", on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="escrow.walletbalance")),
            ],
            options={
                "verbose_name": "Wallet Transaction",
                "verbose_name_plural": "Wallet Transactions",
                "ordering": ["wallet", "sequence"],
                "indexes": [
                    models.Index(fields=["reference_type", "reference_id"], name="escrow_wtx_reference_idx"),
                    models.Index(fields=["type"], name="escrow_wtx_type_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("wallet", "sequence"), name="unique_wallet_transaction_sequence"),
                ],
            },
        ),
    ]
