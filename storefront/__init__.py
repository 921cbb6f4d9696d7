"""Storefront: e-commerce backend for shoppers and administrators."""

__version__ = "1.0.0"
