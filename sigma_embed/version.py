"""
Version management for the Sigma embed application.
"""

__version__ = "1.0.0"
