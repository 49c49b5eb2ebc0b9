"""DEX momentum trader: scan, filter, open and manage positions."""

__version__ = "0.1.0"
