"""
Escrow app: custody, release and distribution of client payments.

This app handles:
- Escrow state machine (capture, hold, release, dispute, refund)
- Scheduled auto-release of held payments past their deadline
- Multi-party distribution with approvals, commission and tax withholding
- Wallet ledger with an append-only balance chain per payee
- Payout requests against wallet balances

Collaborators supplied by the host service:
    - PaymentGateway: executes captures and refunds (Stripe by default)
    - WorkStatusProvider: reports unit-of-work progress and assignees

Usage:
    from escrow.services import EscrowService, DistributionService

    EscrowService.capture_confirmed(request_id, "pi_123", amount_cents=10000, ...)
    EscrowService.mark_held(payment.id, provider_reference="ch_123")
    result = EscrowService.release(request_id, released_by=str(user.id))
"""
