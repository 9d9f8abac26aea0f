"""
Backend NFA Scan: chain sync and agent classification for BAP-578 Non-Fungible Agents.

Walks BNB Smart Chain block by block, discovers contracts, scores them for
BAP-578 compliance from bytecode/ABI/source heuristics, and persists agents,
blocks, events and receipts for the explorer API. Modular layout: chain
provider, analysis engine, database, sync pipeline, API server.
"""

__version__ = "0.1.0"
