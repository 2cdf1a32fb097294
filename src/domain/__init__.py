"""Domain models and types for the currency converter.

Currencies, exchange rates and the entries kept in the conversion history,
favorites and arbitrage audit logs. They hold no I/O so that services and
storage backends can be swapped without touching them.
"""

__all__ = [
    "currency",
    "entries",
    "errors",
    "rates",
]
