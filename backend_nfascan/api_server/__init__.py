"""
Read-only HTTP API over the NFA Scan database.
"""
