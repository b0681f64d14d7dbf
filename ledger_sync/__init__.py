"""
Ledger Sync - Source Package

The data layer of a personal/couple expense and asset tracker:
one normalized document per user, cached locally and mirrored to a
remote single-row-per-user store.

DESIGN PRINCIPLES:
1. Normalize at the boundary, trust nothing from cache, file or remote
2. Local cache is written before any remote write
3. Remote failures never lose local state
4. Every mutation goes through a named operation
5. Storage and auth backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Sync Team"
