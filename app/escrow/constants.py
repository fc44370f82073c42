"""
Shared constants for the escrow engine.

Rounding policy and actor identifiers live here so every validation and
release path agrees on them.
"""

from decimal import Decimal

# Allowed deviation when checking that share percentages sum to 100
PERCENTAGE_TOLERANCE = Decimal("0.01")

HUNDRED = Decimal("100")

# Percentages are stored and compared with two decimal places
PERCENTAGE_QUANTUM = Decimal("0.01")

# Actor recorded for deadline releases; persisted as a null releaser
SYSTEM_AUTO_RELEASE_ACTOR = "system-auto-release"

# Actor recorded when a dispute is resolved in the payee's favour
DISPUTE_RESOLUTION_ACTOR = "dispute-resolution"

# Statutory section for withholding on professional fees
TAX_SECTION_194J = "194J"
