"""
Tests for the travel graph builder.
"""
import asyncio
from typing import Optional

import pytest

from itinerary_engine.application.travel_graph import (
    FALLBACK_INSTRUCTIONS,
    ORIGIN_ID,
    TravelGraphBuilder,
)
from itinerary_engine.config import Settings
from itinerary_engine.domain.errors import ExternalServiceUnavailable
from itinerary_engine.domain.models import GeoPoint, Place
from itinerary_engine.infrastructure.pacing import CancellationToken
from itinerary_engine.infrastructure.routing import RouteResult, RoutingProvider


ORIGIN = GeoPoint(lat=48.8566, lng=2.3522)


def create_test_place(place_id: str, lat: Optional[float] = 48.86, lng: Optional[float] = 2.34, **kwargs) -> Place:
    return Place(place_id=place_id, name=place_id.title(), lat=lat, lng=lng, **kwargs)


def fast_settings(**overrides) -> Settings:
    values = dict(routing_batch_delay_seconds=0.0, routing_timeout_seconds=0.2)
    values.update(overrides)
    return Settings(**values)


class MockRoutingProvider(RoutingProvider):
    """Fixed-duration routing; records every call."""

    def __init__(self, seconds: int = 600, fail_to: Optional[set[GeoPoint]] = None):
        self.seconds = seconds
        self.fail_to = fail_to or set()
        self.calls: list[tuple[GeoPoint, GeoPoint, str]] = []

    async def route(self, origin: GeoPoint, destination: GeoPoint, mode: str = "transit") -> RouteResult:
        self.calls.append((origin, destination, mode))
        if destination in self.fail_to:
            raise ExternalServiceUnavailable("directions", "no route")
        return RouteResult(duration_seconds=self.seconds, instructions="Walk", mode=mode)


class SlowRoutingProvider(RoutingProvider):
    async def route(self, origin: GeoPoint, destination: GeoPoint, mode: str = "transit") -> RouteResult:
        await asyncio.sleep(5)
        return RouteResult(duration_seconds=60, instructions="late")


class NaNRoutingProvider(RoutingProvider):
    async def route(self, origin: GeoPoint, destination: GeoPoint, mode: str = "transit") -> RouteResult:
        return RouteResult(duration_seconds=float("nan"), instructions="broken")


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [1, 3, 5])
async def test_graph_is_complete(count):
    places = [create_test_place(f"p{i}", lat=48.85 + i * 0.01) for i in range(count)]
    provider = MockRoutingProvider()
    builder = TravelGraphBuilder(provider, app_settings=fast_settings())

    graph = await builder.build(ORIGIN, places)

    assert len(graph.edges()) == count * (count + 1)
    for a in graph.node_ids:
        for b in graph.node_ids:
            if a != b:
                assert graph.edge(a, b) is not None
                assert graph.duration_seconds(a, b) == 600
    assert graph.fallback_count() == 0
    assert len(provider.calls) == count * (count + 1)


@pytest.mark.asyncio
async def test_failed_lookups_use_fallback_edge():
    failing = create_test_place("closed", lat=48.90)
    places = [create_test_place("ok", lat=48.87), failing]
    provider = MockRoutingProvider(fail_to={failing.location()})
    builder = TravelGraphBuilder(provider, app_settings=fast_settings())

    graph = await builder.build(ORIGIN, places)

    assert len(graph.edges()) == 6
    edge = graph.edge(ORIGIN_ID, "closed")
    assert edge.is_fallback
    assert edge.duration_seconds == 900
    assert edge.instructions == FALLBACK_INSTRUCTIONS
    assert graph.edge("ok", "closed").is_fallback
    assert not graph.edge("closed", "ok").is_fallback
    assert graph.fallback_count() == 2


@pytest.mark.asyncio
async def test_missing_coordinates_use_fallback_edge():
    places = [create_test_place("nowhere", lat=None, lng=None), create_test_place("here")]
    provider = MockRoutingProvider()
    builder = TravelGraphBuilder(provider, app_settings=fast_settings())

    graph = await builder.build(ORIGIN, places)

    assert len(graph.edges()) == 6
    assert graph.edge(ORIGIN_ID, "nowhere").is_fallback
    assert graph.edge("nowhere", "here").is_fallback
    assert not graph.edge(ORIGIN_ID, "here").is_fallback
    # No provider call is made for edges touching the coordinate-less place
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_timeouts_use_fallback_edge():
    builder = TravelGraphBuilder(SlowRoutingProvider(), app_settings=fast_settings(routing_timeout_seconds=0.01))

    graph = await builder.build(ORIGIN, [create_test_place("a")])

    assert len(graph.edges()) == 2
    assert all(e.is_fallback for e in graph.edges())


@pytest.mark.asyncio
async def test_invalid_duration_uses_fallback_edge():
    builder = TravelGraphBuilder(NaNRoutingProvider(), app_settings=fast_settings())

    graph = await builder.build(ORIGIN, [create_test_place("a")])

    assert all(e.is_fallback and e.duration_seconds == 900 for e in graph.edges())


@pytest.mark.asyncio
async def test_cancelled_build_resolves_to_fallbacks():
    token = CancellationToken()
    token.cancel()
    provider = MockRoutingProvider()
    builder = TravelGraphBuilder(provider, app_settings=fast_settings())

    graph = await builder.build(ORIGIN, [create_test_place("a"), create_test_place("b")], token=token)

    assert len(graph.edges()) == 6
    assert graph.fallback_count() == 6
    assert provider.calls == []


@pytest.mark.asyncio
async def test_duplicates_and_cap():
    places = [create_test_place(f"p{i}") for i in range(6)] + [create_test_place("p0")]
    builder = TravelGraphBuilder(MockRoutingProvider(), app_settings=fast_settings(max_graph_places=4))

    graph = await builder.build(ORIGIN, places)

    assert [p.place_id for p in graph.places] == ["p0", "p1", "p2", "p3"]
    assert len(graph.edges()) == 4 * 5


@pytest.mark.asyncio
async def test_mode_is_passed_to_provider():
    provider = MockRoutingProvider()
    builder = TravelGraphBuilder(provider, app_settings=fast_settings(routing_mode="walking"))

    await builder.build(ORIGIN, [create_test_place("a")])

    assert {mode for _, _, mode in provider.calls} == {"walking"}


@pytest.mark.asyncio
async def test_unknown_pair_uses_configured_fallback():
    builder = TravelGraphBuilder(MockRoutingProvider(), app_settings=fast_settings(fallback_travel_seconds=420))

    graph = await builder.build(ORIGIN, [create_test_place("a")])

    assert graph.duration_seconds("a", "not-in-graph") == 420
    assert graph.duration_seconds(ORIGIN_ID, "a") == 600
