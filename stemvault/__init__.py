"""
StemVault
Git-like version control for multitrack audio projects
"""

__version__ = "0.1.0"
