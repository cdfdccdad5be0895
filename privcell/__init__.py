"""
privcell - private single-value state cells

A research prototype of confidential program state:
- Singleton cells over a write-once note/nullifier ledger
- Poseidon note commitments and nullifiers
- Initialization nullifiers (global or per-owner)
- Optimistic executions with all-or-nothing settlement
"""

__version__ = "0.1.0"
