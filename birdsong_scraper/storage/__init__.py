"""
Storage module for the scraper's output directory.

Provides the abstract storage interface and its local filesystem
implementation, used for the persisted ledger and downloaded media.
"""

from .base import BaseStorage
from .local import LocalStorage

__all__ = [
    "BaseStorage",
    "LocalStorage",
]
