"""Equilibrium: on-device retrieval-augmented conversation core."""

__version__ = "0.1.0"
