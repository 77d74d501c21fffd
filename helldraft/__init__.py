"""
Helldraft - Cooperative Run Drafting Engine

A deterministic, host-authoritative engine for a cooperative, run-based
drafting game. Players climb difficulty tiers, draft equipment, resolve
events and pay for failed extractions. The engine provides:
- An immutable game state and a pure reducer
- Weighted draft hand generation
- Event outcome processing
- Lobby management and snapshot sync over a shared key-value store
"""

__version__ = "0.1.0"
