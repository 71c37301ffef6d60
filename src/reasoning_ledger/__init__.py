"""Reasoning Ledger.

A file-backed state ledger for multi-step agent workflows:
- versioned workflows evolved through proposed-then-applied patches
- runs with append-only event logs
- per-step node results
- schema-validated collections stamped with provenance
"""

__version__ = "0.1.0"

from reasoning_ledger.config import LedgerSettings
from reasoning_ledger.ledger import Ledger
from reasoning_ledger.workspace import Workspace

__all__ = ["__version__", "Ledger", "LedgerSettings", "Workspace"]
