# QBWC Sync - QuickBooks Web Connector synchronization service
# Hands pending work to a polling Web Connector one item at a time and
# reconciles what QuickBooks reports back

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
