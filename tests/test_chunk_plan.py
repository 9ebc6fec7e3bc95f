"""Tests for chunk size tiers, preference clamping and chunk counts"""
import math

import pytest

from chunked_transfer.core import Settings
from chunked_transfer.services.chunk_plan import plan_chunks, tier_chunk_size

MB = 1024 * 1024


@pytest.fixture
def plan_settings() -> Settings:
    return Settings()


def test_small_file_gets_minimum_chunk_size(plan_settings):
    plan = plan_chunks(12 * MB, settings=plan_settings)

    assert plan.chunk_size == 5 * MB
    assert plan.total_chunks == 3


def test_large_file_gets_maximum_tier(plan_settings):
    plan = plan_chunks(600 * MB, settings=plan_settings)

    assert plan.chunk_size == 50 * MB
    assert plan.total_chunks == 12


def test_middle_tier(plan_settings):
    assert tier_chunk_size(50 * MB, plan_settings) == 25 * MB
    assert tier_chunk_size(499 * MB, plan_settings) == 25 * MB
    assert tier_chunk_size(50 * MB - 1, plan_settings) == 5 * MB


@pytest.mark.parametrize(
    "preferred, expected",
    [
        (1024, 5 * MB),          # below minimum
        (10 * MB, 10 * MB),      # within bounds
        (500 * MB, 50 * MB),     # above maximum
    ],
)
def test_preference_overrides_tier_and_is_clamped(plan_settings, preferred, expected):
    plan = plan_chunks(600 * MB, preferred_chunk_size=preferred, settings=plan_settings)

    assert plan.chunk_size == expected
    assert plan.total_chunks == math.ceil(600 * MB / expected)


@pytest.mark.parametrize(
    "file_size",
    [1, 5 * MB - 1, 5 * MB, 5 * MB + 1, 50 * MB, 123_456_789, 500 * MB, 4 * 1024 * MB],
)
def test_chunk_count_covers_file_and_size_stays_in_bounds(plan_settings, file_size):
    plan = plan_chunks(file_size, settings=plan_settings)

    assert plan_settings.MIN_CHUNK_SIZE <= plan.chunk_size <= plan_settings.MAX_CHUNK_SIZE
    assert plan.total_chunks == math.ceil(file_size / plan.chunk_size)
