"""Tests for route matching and route-level delivery."""

import json

import httpx
import pytest

from eventrelay.models import Destination, Route, Transformation
from eventrelay.services.event_router import event_router, event_type_matches


async def add_route(
    session,
    name,
    event_types,
    condition=None,
    transformation_type="identity",
    transformation_config=None,
    url=None,
    priority=100,
    enabled=True,
):
    transformation = Transformation(
        name=f"{name}-transform", type=transformation_type, config=transformation_config or {}
    )
    destination = Destination(name=f"{name}-dest", type="webhook", url=url or f"http://hooks.test/{name}")
    session.add_all([transformation, destination])
    await session.flush()

    route = Route(
        name=name,
        event_types=event_types,
        condition=condition,
        transformation_id=transformation.id,
        destination_id=destination.id,
        priority=priority,
        enabled=enabled,
    )
    session.add(route)
    await session.commit()
    return route


class TestEventTypeMatches:
    """Tests for event type patterns."""

    @pytest.mark.parametrize("event_name,expected", [
        ("order.paid", True),
        ("order.shipped", True),
        ("user.created", False),
        ("orderXpaid", False),
    ])
    def test_glob(self, event_name, expected):
        assert event_type_matches(event_name, ["order.*"]) is expected

    def test_wildcard_and_exact(self):
        assert event_type_matches("anything", ["*"])
        assert event_type_matches("user.created", ["order.paid", "user.created"])
        assert not event_type_matches("user.deleted", ["user.created"])
        assert not event_type_matches(None, ["user.*"])


class TestRouteEvent:
    """Tests for delivering events through routes."""

    async def test_glob_route_delivery(self, db_session, wired_services, outbound):
        await add_route(db_session, "orders", ["order.*"])

        for name in ("order.paid", "order.shipped", "user.created"):
            await event_router.route_event({"id": name, "eventName": name, "properties": {}})

        delivered = [json.loads(request.content)["eventName"] for request in outbound.requests]
        assert delivered == ["order.paid", "order.shipped"]

    async def test_condition_filtering(self, db_session, wired_services, outbound):
        condition = {"type": "property", "property": "properties.plan", "operator": "in", "value": ["pro", "team"]}
        await add_route(db_session, "paid-plans", ["*"], condition=condition)

        for plan in ("pro", "free", "team", None):
            await event_router.route_event({"id": f"e-{plan}", "eventName": "signup", "properties": {"plan": plan}})

        delivered = [json.loads(request.content)["properties"]["plan"] for request in outbound.requests]
        assert delivered == ["pro", "team"]

    async def test_result_shape_and_counters(self, db_session, session_factory, wired_services, outbound):
        route = await add_route(
            db_session, "mapped", ["order.paid"],
            transformation_type="mapping",
            transformation_config={"mapping": {"total": "properties.amount"}},
        )

        results = await event_router.route_event({"id": "e1", "eventName": "order.paid", "properties": {"amount": 5}})

        assert results == [{
            "routeId": route.id,
            "routeName": "mapped",
            "destination": "mapped-dest",
            "success": True,
            "statusCode": 200,
        }]
        assert json.loads(outbound.requests[0].content) == {"total": 5}

        async with session_factory() as session:
            stored_route = await session.get(Route, route.id)
            destination = await session.get(Destination, route.destination_id)
            assert stored_route.use_count == 1
            assert stored_route.last_used is not None
            assert destination.success_count == 1
            assert destination.last_sent is not None

    async def test_failed_delivery_recorded(self, db_session, session_factory, wired_services, outbound):
        outbound.responder = lambda request: httpx.Response(502, text="bad gateway")
        route = await add_route(db_session, "flaky", ["*"])

        [result] = await event_router.route_event({"id": "e1", "eventName": "x", "properties": {}})

        assert result["success"] is False
        assert result["error"] == "HTTP error 502: bad gateway"
        async with session_factory() as session:
            destination = await session.get(Destination, route.destination_id)
            assert destination.failure_count == 1
            assert destination.last_error == "HTTP error 502: bad gateway"

    async def test_priority_order_and_disabled_routes(self, db_session, wired_services, outbound):
        await add_route(db_session, "second", ["*"], priority=20)
        await add_route(db_session, "first", ["*"], priority=10)
        await add_route(db_session, "off", ["*"], enabled=False)

        results = await event_router.route_event({"id": "e1", "eventName": "x", "properties": {}})

        assert [result["routeName"] for result in results] == ["first", "second"]

    async def test_broken_transformation_reports_failure(self, db_session, wired_services, outbound):
        await add_route(db_session, "broken", ["*"], transformation_type="template", transformation_config={})

        [result] = await event_router.route_event({"id": "e1", "eventName": "x", "properties": {}})

        assert result["success"] is False
        assert result["error"].startswith("Transformation failed:")
        assert outbound.requests == []

    async def test_destination_filter(self, db_session, wired_services, outbound):
        await add_route(db_session, "a", ["*"])
        await add_route(db_session, "b", ["*"])

        results = await event_router.route_event({"id": "e1", "eventName": "x", "properties": {}}, ["b-dest"])

        assert [result["destination"] for result in results] == ["b-dest"]

    async def test_invalid_event_is_ignored(self, db_session, wired_services, outbound):
        await add_route(db_session, "any", ["*"])
        assert await event_router.route_event({"id": "e1"}) == []
        assert outbound.requests == []

    async def test_refresh_picks_up_new_routes(self, db_session, wired_services, outbound):
        await event_router.initialize()
        assert event_router.routes == []

        await add_route(db_session, "late", ["*"])
        await event_router.refresh_after_mutation()

        assert [route["name"] for route in event_router.routes] == ["late"]
