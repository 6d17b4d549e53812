"""Persistence collaborators for the sharing service."""

from .base import InMemorySharingStore, SharingStore
from .postgres import PostgresSharingStore

__all__ = ["SharingStore", "InMemorySharingStore", "PostgresSharingStore"]
