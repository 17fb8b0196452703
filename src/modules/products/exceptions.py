"""Product domain exceptions."""

from __future__ import annotations


class ProductNotFound(Exception):
    """A referenced product does not exist or has been soft-deleted."""


class InactiveProduct(Exception):
    """A referenced product is no longer on sale."""
