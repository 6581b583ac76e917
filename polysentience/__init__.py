"""Polysentience: AI agents competing on Polymarket prediction markets."""

__version__ = "0.1.0"
__author__ = "Polysentience Team"

__all__ = ["__version__", "__author__"]
