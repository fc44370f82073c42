"""
Wallet ledger: payee balances backed by an append-only transaction log.

All balance mutation goes through WalletLedger.credit / WalletLedger.debit
(escrow.wallet.services). Models are in escrow.wallet.models and are
re-exported by escrow.models.
"""
