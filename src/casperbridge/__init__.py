"""Casper <-> Ethereum bridge relayer."""

__version__ = "0.1.0"
