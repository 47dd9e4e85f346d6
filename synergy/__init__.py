"""
Pharmacy Synergy Engine

Pharmacy relationship snapshots and synergy queries for the fantasy league.
"""

__version__ = "1.0.0"
