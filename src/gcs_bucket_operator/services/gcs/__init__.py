"""Google Cloud Storage client."""

from .client import GCSProvider

__all__ = ["GCSProvider"]
