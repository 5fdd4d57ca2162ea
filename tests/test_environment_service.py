# ============================================================================
# ENVIRONMENTAL DATA CACHE TESTS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Tests - Weather/tide snapshot cache
# PURPOSE: Verify keying, TTL, synthesis fallback and fetch dedup
# CREATED: 19 OCT 2026
# ============================================================================
"""
Environmental Data Cache Tests

Uses a fake upstream and a hand-advanced clock.

Run with:
    pytest tests/test_environment_service.py -v
"""

import asyncio
from datetime import datetime, timezone

import pytest

from core.config import EnvironmentDefaults
from core.contracts import GeoLocation
from core.errors import TransientNetworkError
from services.environment_service import (
    EnvironmentalDataCache,
    parse_tide,
    parse_weather,
    seasonal_temperature,
    synthetic_tide,
)


class FakeSource:
    """Upstream weather/tide endpoints with switchable failures."""

    def __init__(self, delay=0.0):
        self.weather_calls = 0
        self.tide_calls = 0
        self.weather_error = None
        self.tide_error = None
        self.delay = delay

    async def get_current_weather(self, latitude, longitude):
        self.weather_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.weather_error:
            raise self.weather_error
        return {"temperature": 21.0, "windSpeed": 4.0, "windDirection": 90.0, "humidity": 70}

    async def get_tide_forecast(self, latitude, longitude, hours):
        self.tide_calls += 1
        if self.tide_error:
            raise self.tide_error
        return [{"tideHeight": 1.2, "currentSpeed": 0.4, "currentDirection": 135.0}]


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _cache(source=None, **defaults):
    clock = Clock()
    cache = EnvironmentalDataCache(
        source or FakeSource(),
        defaults=EnvironmentDefaults(**defaults),
        clock=clock,
    )
    return cache, clock


HOUSTON = GeoLocation(latitude=29.7604, longitude=-95.3698)


class TestFetch:

    def test_real_snapshot(self):
        async def run_test():
            cache, _ = _cache()
            snapshot = await cache.fetch(HOUSTON)
            assert not snapshot.synthetic
            assert snapshot.wind_speed == 4.0
            assert snapshot.current_speed == 0.4
            assert snapshot.tide_height == 1.2

        asyncio.run(run_test())

    def test_jitter_hits_same_entry(self):
        async def run_test():
            source = FakeSource()
            cache, _ = _cache(source)
            await cache.fetch(HOUSTON)
            await cache.fetch(GeoLocation(latitude=29.7598, longitude=-95.3702))
            assert source.weather_calls == 1
            assert cache.stats["entries"] == 1
            assert cache.stats["hits"] == 1

        asyncio.run(run_test())

    def test_entry_expires_after_ttl(self):
        async def run_test():
            source = FakeSource()
            cache, clock = _cache(source)
            await cache.fetch(HOUSTON)

            clock.now += 14 * 60
            await cache.fetch(HOUSTON)
            assert source.weather_calls == 1

            clock.now += 2 * 60
            await cache.fetch(HOUSTON)
            assert source.weather_calls == 2

        asyncio.run(run_test())

    def test_invalidate(self):
        async def run_test():
            source = FakeSource()
            cache, _ = _cache(source)
            await cache.fetch(HOUSTON)
            cache.invalidate(HOUSTON)
            assert cache.peek(HOUSTON) is None
            await cache.fetch(HOUSTON)
            assert source.weather_calls == 2

        asyncio.run(run_test())

    def test_concurrent_fetches_share_one_call(self):
        async def run_test():
            source = FakeSource(delay=0.01)
            cache, _ = _cache(source)
            results = await asyncio.gather(*(cache.fetch(HOUSTON) for _ in range(5)))
            assert source.weather_calls == 1
            assert all(r is results[0] for r in results)

        asyncio.run(run_test())


class TestSyntheticFallback:

    def test_network_error_synthesizes(self):
        async def run_test():
            source = FakeSource()
            source.weather_error = TransientNetworkError("down")
            source.tide_error = TransientNetworkError("down")
            cache, _ = _cache(source)

            snapshot = await cache.fetch(HOUSTON)

            assert snapshot.synthetic
            assert snapshot.wind_speed == 5.0
            assert snapshot.wind_direction == 270.0
            assert 0.5 <= snapshot.current_speed <= 0.8

        asyncio.run(run_test())

    def test_synthetic_entry_has_short_ttl(self):
        async def run_test():
            source = FakeSource()
            source.weather_error = TransientNetworkError("down")
            cache, clock = _cache(source)
            await cache.fetch(HOUSTON)

            source.weather_error = None
            clock.now += 61
            snapshot = await cache.fetch(HOUSTON)

            assert not snapshot.synthetic
            assert source.weather_calls == 2

        asyncio.run(run_test())

    def test_partial_failure_keeps_real_half(self):
        async def run_test():
            source = FakeSource()
            source.tide_error = TransientNetworkError("tide down")
            cache, _ = _cache(source)

            snapshot = await cache.fetch(HOUSTON)

            assert snapshot.synthetic
            assert snapshot.wind_speed == 4.0
            assert snapshot.temperature == 21.0
            assert snapshot.current_speed != 0.4

        asyncio.run(run_test())

    def test_timeout_synthesizes(self):
        async def run_test():
            source = FakeSource(delay=0.2)
            cache, _ = _cache(source, fetch_timeout_seconds=0.01)
            snapshot = await cache.fetch(HOUSTON)
            assert snapshot.synthetic
            assert snapshot.wind_speed == 5.0

        asyncio.run(run_test())

    def test_malformed_payload_synthesizes(self):
        async def run_test():
            source = FakeSource()

            async def empty_tide(latitude, longitude, hours):
                return []

            source.get_tide_forecast = empty_tide
            cache, _ = _cache(source)
            snapshot = await cache.fetch(HOUSTON)
            assert snapshot.synthetic

        asyncio.run(run_test())

    @pytest.mark.parametrize("tides", [[None], ["high"], [[1.2]], {"tideHeight": 1.2}])
    def test_non_object_tide_readings_synthesize(self, tides):
        async def run_test():
            source = FakeSource()

            async def odd_tide(latitude, longitude, hours):
                return tides

            source.get_tide_forecast = odd_tide
            cache, _ = _cache(source)
            snapshot = await cache.fetch(HOUSTON)
            assert snapshot.synthetic
            assert snapshot.wind_speed == 4.0

        asyncio.run(run_test())

    def test_non_object_weather_synthesizes(self):
        async def run_test():
            source = FakeSource()

            async def odd_weather(latitude, longitude):
                return [21.0]

            source.get_current_weather = odd_weather
            cache, _ = _cache(source)
            snapshot = await cache.fetch(HOUSTON)
            assert snapshot.synthetic
            assert snapshot.current_speed == 0.4

        asyncio.run(run_test())


class TestSynthesisModels:

    def test_equator_warmer_than_high_latitude(self):
        when = datetime(2026, 7, 19, tzinfo=timezone.utc)
        assert seasonal_temperature(0.0, when) > seasonal_temperature(60.0, when)

    def test_hemispheres_out_of_phase(self):
        july = datetime(2026, 7, 19, tzinfo=timezone.utc)
        january = datetime(2026, 1, 19, tzinfo=timezone.utc)
        assert seasonal_temperature(45.0, july) > seasonal_temperature(45.0, january)
        assert seasonal_temperature(-45.0, july) < seasonal_temperature(-45.0, january)

    def test_tide_bounds(self):
        for hour in range(0, 25):
            tide = synthetic_tide(datetime(2026, 10, 19, hour % 24, tzinfo=timezone.utc))
            assert -2.0 <= tide["tide_height"] <= 2.0
            assert 0.5 <= tide["current_speed"] <= 0.8
            assert 135.0 <= tide["current_direction"] <= 225.0


class TestParsing:

    def test_parse_weather_accepts_snake_case(self):
        parsed = parse_weather({"temperature": 10, "wind_speed": 3, "wind_direction": 45})
        assert parsed == {"temperature": 10.0, "wind_speed": 3.0, "wind_direction": 45.0}

    def test_parse_weather_missing_field(self):
        with pytest.raises(KeyError):
            parse_weather({"temperature": 10})

    def test_parse_tide_defaults(self):
        parsed = parse_tide([{"tideHeight": 0.5}])
        assert parsed["current_speed"] == 0.5
        assert parsed["current_direction"] == 180.0

    def test_parse_tide_empty(self):
        with pytest.raises(ValueError):
            parse_tide([])

    def test_parse_tide_rejects_non_object_reading(self):
        with pytest.raises(TypeError):
            parse_tide([None])
