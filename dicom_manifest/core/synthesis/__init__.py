"""Metadata synthesis from manifest references and sampled images."""

from .physics import PhysicsProfile, profile_for
from .synthesizer import MetadataSynthesizer, SynthesisContext

__all__ = ["MetadataSynthesizer", "PhysicsProfile", "SynthesisContext", "profile_for"]
