"""
In-cluster IPAM controller
Allocates addresses from pools to claims against a declarative resource store
"""

__version__ = "1.0.0"
