"""
Bookwell - multi-tenant appointment scheduling backend
"""

__version__ = "0.1.0"
