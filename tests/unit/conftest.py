"""Shared fixtures for unit tests."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from gcs_bucket_operator.utils.cache import invalidate_cache


@pytest.fixture(autouse=True)
def no_kopf_events():
    """kopf.event needs a running operator to post to."""
    with patch("gcs_bucket_operator.utils.events.kopf.event") as mock_event:
        yield mock_event


@pytest.fixture(autouse=True)
def clear_cache():
    """Start every test with an empty object cache."""
    invalidate_cache()
    yield
    invalidate_cache()
