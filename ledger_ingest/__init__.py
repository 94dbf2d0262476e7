"""
Ledger Ingest - Source Package

Backend for a personal-finance app: uploaded bank statements and receipts
are pulled from blob storage, run through Gemini under a strict output
schema, and materialized as statements, transactions, receipts and items
in a per-user document store.

DESIGN PRINCIPLES:
1. Every raw file ends in a visible terminal status
2. Fail early, fail visibly
3. Never accept partially valid extraction output
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Ingest Team"
