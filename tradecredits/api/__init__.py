"""HTTP surface for the credit system."""

from tradecredits.api.app import create_app

__all__ = ["create_app"]
