"""Metadata store integration."""

from .bridge import InMemoryMetadataStore, MetadataStore, StoreBridge

__all__ = ["InMemoryMetadataStore", "MetadataStore", "StoreBridge"]
