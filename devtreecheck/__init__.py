"""Structural and semantic checks for in-memory device trees."""

__version__ = "1.6.1"
__all__ = ["data", "tree", "checker", "structural", "semantic", "providers", "registry"]