"""
Inventory Ledger

Per-day stock accounting for multi-branch inventory:
- Closing stock computed from independent movement events
- Forward propagation of past-dated corrections
- Guarded stock-consuming writes with bounded retry
- Issuance settlement into derived sales
"""

__version__ = "0.1.0"
