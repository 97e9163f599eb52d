"""MADO manifest parsing."""

from .parser import ManifestParser

__all__ = ["ManifestParser"]
