"""
Test helpers for avrowire.

Requires the ``testing`` extra (FastAPI).
"""

from .fake_registry import FakeRegistryState, create_fake_registry_app

__all__ = ["FakeRegistryState", "create_fake_registry_app"]
