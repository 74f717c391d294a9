"""Persistent storage."""

from steamagg.store.documents import CanonicalStore, DocumentKind, is_steam64
from steamagg.store.alias_index import AliasIndex

__all__ = ["CanonicalStore", "DocumentKind", "AliasIndex", "is_steam64"]
