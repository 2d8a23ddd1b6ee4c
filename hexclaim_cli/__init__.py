"""
hexclaim CLI - Command-line interface for the territory engine.

Usage:
    hexclaim cell 37.7749 -122.4194
    hexclaim neighbors 9_52341_-151011
    hexclaim process run.json
    hexclaim group ledger.yaml --boundary-mode outline
    hexclaim simulate --pattern loop -o run.json
"""

__version__ = "1.0.0"
