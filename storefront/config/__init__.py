"""Configuration package for the storefront API."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
