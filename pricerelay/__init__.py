"""
pricerelay - Republishes a vendor pricing stream as binary frames on a PUB socket.
"""

__version__ = "0.1.0"
