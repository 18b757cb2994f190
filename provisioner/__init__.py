"""
MikuDB Provisioner — install, configure and register the MikuDB service.
"""

__version__ = "0.1.0"
