"""Veridica: content ownership verification with tiered proof persistence.

For any uploaded content, decide whether it is new, already owned by the
requester, or owned by someone else, and keep that answer consistent
between the ledger (the external authority) and the local proof mirrors:

  - SHA-256 content fingerprints
  - Ledger client Protocol with in-memory and Algorand backends
  - Primary (SQLite) and development-only Secondary (local cache) tiers
  - One storage policy per process; production is fail-closed
  - Ownership resolver with conflict, unverifiable and unmirrored outcomes
"""

__version__ = "0.1.0"
__description__ = "Content ownership verification with tiered proof persistence"

from veridica.core.resolver import OwnershipResolver, build_resolver
from veridica.core.fingerprint import compute_fingerprint
from veridica.cli.app import app as cli

__all__ = [
    "OwnershipResolver",
    "build_resolver",
    "compute_fingerprint",
    "cli",
    "__version__",
]
