"""Sage 100 Business Object Interface.

Importing this package registers the "com" driver.
"""

from connectors.sage100.com_driver import ComDriver
from connectors.sage100.handshake import SessionFactory
from connectors.sage100.records import CustomerRecordSource, reset_key_lookup_cache

__all__ = [
    "ComDriver",
    "SessionFactory",
    "CustomerRecordSource",
    "reset_key_lookup_cache",
]
