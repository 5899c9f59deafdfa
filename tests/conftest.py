"""Pytest configuration and shared fixtures."""

import random

import pytest


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source so selection tests are reproducible."""
    return random.Random(1234)
