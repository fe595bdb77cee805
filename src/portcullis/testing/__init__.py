"""Testing utilities for portcullis applications."""

from portcullis.testing.client import TestClient

__all__ = ["TestClient"]
