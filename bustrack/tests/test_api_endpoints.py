"""Integration tests for API endpoints."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.config import settings as app_settings
from bustrack.main import app
from bustrack.api.tracking import parse_command
from bustrack.services.tracking_hub import LOCATION_UPDATE_EVENT, bus_room, tracking_hub

BUS = {
    "bus_number": "B-301",
    "registration_number": "KA-03-B-3010",
    "bus_type": "Local",
    "capacity": 40,
    "status": "active",
}
DRIVER = {
    "first_name": "Ravi",
    "last_name": "Kumar",
    "email": "ravi.kumar@example.com",
    "license_number": "DL-3001",
}
ROUTE = {
    "route_number": "500D",
    "route_name": "Hebbal - Silk Board",
    "total_distance": 22.0,
    "estimated_duration": 70,
    "stops": [
        {"stop_number": 1, "name": "Hebbal", "latitude": 13.0358, "longitude": 77.5970},
        {"stop_number": 2, "name": "Marathahalli", "latitude": 12.9569, "longitude": 77.7011},
        {"stop_number": 3, "name": "Silk Board", "latitude": 12.9177, "longitude": 77.6238, "is_terminal": True},
    ],
}


def _parse(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def _seed(client: AsyncClient):
    bus = (await client.post("/api/buses", json=BUS)).json()
    driver = (await client.post("/api/drivers", json=DRIVER)).json()
    route = (await client.post("/api/routes", json=ROUTE)).json()
    return bus, route, driver


async def _generate(client: AsyncClient, bus_id: int, route_id: int, stop_id: int = 2, **factors):
    payload = {
        "bus_id": bus_id,
        "route_id": route_id,
        "stop_id": stop_id,
        "current_location": {"latitude": 13.0358, "longitude": 77.5970},
        "factors": {"distance_to_stop": 4.0, **factors},
    }
    return await client.post("/api/predictions/generate", json=payload)


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test the root endpoint."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert "version" in data
    assert data["status"] == "operational"


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_create_and_get_reference_data(client: AsyncClient):
    bus, route, driver = await _seed(client)

    assert bus["available_seats"] == 40
    assert bus["current_location"]["type"] == "Point"
    assert [stop["name"] for stop in route["stops"]] == ["Hebbal", "Marathahalli", "Silk Board"]
    assert driver["is_on_duty"] is False

    response = await client.get(f"/api/buses/{bus['id']}")
    assert response.status_code == 200
    assert response.json()["bus_number"] == "B-301"

    listing = (await client.get("/api/routes")).json()
    assert listing["count"] == 1

    drivers = (await client.get("/api/drivers")).json()
    assert drivers["drivers"][0]["email"] == DRIVER["email"]


@pytest.mark.asyncio
async def test_duplicate_bus_is_conflict(client: AsyncClient):
    await client.post("/api/buses", json=BUS)

    response = await client.post("/api/buses", json=BUS)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_route_with_repeated_stop_numbers_is_rejected(client: AsyncClient):
    payload = dict(ROUTE, stops=[ROUTE["stops"][0], ROUTE["stops"][0]])

    response = await client.post("/api/routes", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_missing_records_return_404(client: AsyncClient):
    assert (await client.get("/api/buses/99")).status_code == 404
    assert (await client.get("/api/routes/99")).status_code == 404
    assert (await client.get("/api/drivers/99")).status_code == 404


@pytest.mark.asyncio
async def test_admin_token_guards_reference_writes(monkeypatch, client: AsyncClient):
    monkeypatch.setattr(app_settings, "admin_api_token", "s3cret")

    denied = await client.post("/api/buses", json=BUS)
    allowed = await client.post("/api/buses", json=BUS, headers={"X-API-Key": "s3cret"})

    assert denied.status_code == 401
    assert allowed.status_code == 201


@pytest.mark.asyncio
async def test_generate_prediction(client: AsyncClient):
    bus, route, _ = await _seed(client)

    response = await _generate(client, bus["id"], route["id"], traffic_conditions="high", current_speed=15)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["prediction_accuracy"] is None
    assert data["factors"]["traffic_conditions"] == "high"
    assert data["factors"]["time_of_day"] in {"morning", "afternoon", "evening", "night"}
    assert data["current_location"]["coordinates"] == [77.5970, 13.0358]
    predicted = _parse(data["predicted_arrival_time"])
    created = _parse(data["created_at"])
    assert predicted > created


@pytest.mark.asyncio
async def test_generate_prediction_validation(client: AsyncClient):
    bus, route, _ = await _seed(client)

    bad_traffic = await _generate(client, bus["id"], route["id"], traffic_conditions="gridlock")
    bad_speed = await _generate(client, bus["id"], route["id"], current_speed=500)
    no_distance = await client.post(
        "/api/predictions/generate",
        json={
            "bus_id": bus["id"],
            "route_id": route["id"],
            "stop_id": 1,
            "current_location": {"latitude": 0, "longitude": 0},
            "factors": {},
        },
    )

    assert bad_traffic.status_code == 422
    assert bad_speed.status_code == 422
    assert no_distance.status_code == 422


@pytest.mark.asyncio
async def test_generate_prediction_unknown_bus(client: AsyncClient):
    _, route, _ = await _seed(client)

    response = await _generate(client, 999, route["id"])

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_report_actual_and_analytics(client: AsyncClient):
    bus, route, _ = await _seed(client)
    prediction = (await _generate(client, bus["id"], route["id"])).json()
    predicted = _parse(prediction["predicted_arrival_time"])

    response = await client.put(
        f"/api/predictions/{prediction['id']}/actual",
        json={"actual_arrival_time": (predicted + timedelta(minutes=25)).isoformat()},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "arrived"
    assert response.json()["prediction_accuracy"] == 50

    analytics = (await client.get("/api/predictions/analytics", params={"period": "24h"})).json()
    assert analytics["period"] == "24h"
    assert analytics["analytics"]["total_predictions"] == 1
    assert analytics["analytics"]["accurate_predictions"] == 0
    assert analytics["analytics"]["average_delay_minutes"] == pytest.approx(25, abs=1e-3)

    accuracy = (await client.get(f"/api/predictions/accuracy/{bus['id']}/{route['id']}")).json()
    assert accuracy["accuracy"]["average_accuracy"] == 50


@pytest.mark.asyncio
async def test_report_actual_unknown_prediction(client: AsyncClient):
    response = await client.put(
        "/api/predictions/12345/actual",
        json={"actual_arrival_time": "2026-03-04T14:00:00+00:00"},
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_refresh_prediction_factors(client: AsyncClient):
    bus, route, _ = await _seed(client)
    prediction = (await _generate(client, bus["id"], route["id"])).json()

    response = await client.put(
        f"/api/predictions/{prediction['id']}/factors",
        json={"weather_conditions": "rainy"},
    )

    assert response.status_code == 200
    assert response.json()["factors"]["weather_conditions"] == "rainy"
    assert response.json()["factors"]["distance_to_stop"] == 4.0


@pytest.mark.asyncio
async def test_stop_and_bus_predictions(client: AsyncClient):
    bus, route, _ = await _seed(client)
    await _generate(client, bus["id"], route["id"], stop_id=2)
    await _generate(client, bus["id"], route["id"], stop_id=3)

    stop = (await client.get("/api/predictions/stop/2", params={"route_id": route["id"]})).json()
    by_bus = (await client.get(f"/api/predictions/bus/{bus['id']}", params={"status": "pending"})).json()

    assert [p["stop_id"] for p in stop["predictions"]] == [2]
    assert len(by_bus["predictions"]) == 2


@pytest.mark.asyncio
async def test_stop_predictions_require_route(client: AsyncClient):
    response = await client.get("/api/predictions/stop/2")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_trip_and_location_push(client: AsyncClient):
    bus, route, driver = await _seed(client)
    subscriber = Mock()
    subscriber.send_json = AsyncMock()
    tracking_hub.join(subscriber, bus_room(bus["id"]))

    try:
        started = await client.post(
            f"/api/buses/{bus['id']}/trip/start",
            json={"route_id": route["id"], "driver_id": driver["id"]},
        )
        assert started.status_code == 200
        assert started.json()["bus"]["status"] == "on_trip"

        moved = await client.put(
            f"/api/buses/{bus['id']}/location",
            json={"latitude": 12.9569, "longitude": 77.7011, "speed": 25},
        )
        assert moved.status_code == 200
        assert moved.json()["delivered"] == 1

        sent = subscriber.send_json.await_args.args[0]
        assert sent["event"] == LOCATION_UPDATE_EVENT
        assert sent["data"]["location"]["coordinates"] == [77.7011, 12.9569]

        nearby = (await client.get("/api/buses/nearby", params={"lat": 12.957, "lon": 77.701})).json()
        assert nearby["count"] == 1

        again = await client.post(
            f"/api/buses/{bus['id']}/trip/start",
            json={"route_id": route["id"], "driver_id": driver["id"]},
        )
        assert again.status_code == 400

        ended = await client.post(f"/api/buses/{bus['id']}/trip/end")
        assert ended.status_code == 200
        assert ended.json()["bus"]["status"] == "active"
    finally:
        tracking_hub.disconnect(subscriber)


@pytest.mark.asyncio
async def test_location_update_validation(client: AsyncClient):
    bus, _, _ = await _seed(client)

    response = await client.put(
        f"/api/buses/{bus['id']}/location",
        json={"latitude": 123, "longitude": 77.7},
    )

    assert response.status_code == 422


def test_tracking_socket_join_and_leave():
    test_client = TestClient(app)
    with test_client.websocket_connect("/ws/tracking") as websocket:
        websocket.send_json({"action": "join", "bus_id": 7})
        assert websocket.receive_json() == {"event": "join", "data": {"room": "bus-7"}}
        assert tracking_hub.subscribers("bus-7") == 1

        websocket.send_json({"action": "leave", "bus_id": 7})
        assert websocket.receive_json() == {"event": "leave", "data": {"room": "bus-7"}}

        websocket.send_json({"action": "dance"})
        assert websocket.receive_json()["event"] == "error"

    assert tracking_hub.subscribers("bus-7") == 0


@pytest.mark.asyncio
async def test_system_endpoints(client: AsyncClient):
    logs = await client.get("/api/system/logs", params={"level": "warning"})
    subscribers = await client.get("/api/system/tracking/4")

    assert logs.status_code == 200
    assert logs.json() == {"logs": [], "count": 0}
    assert subscribers.json() == {"room": "bus-4", "subscribers": 0}


@pytest.mark.asyncio
async def test_refresh_arrived_prediction_is_conflict(client: AsyncClient):
    bus, route, _ = await _seed(client)
    prediction = (await _generate(client, bus["id"], route["id"])).json()
    await client.put(
        f"/api/predictions/{prediction['id']}/actual",
        json={"actual_arrival_time": prediction["predicted_arrival_time"]},
    )

    response = await client.put(
        f"/api/predictions/{prediction['id']}/factors",
        json={"traffic_conditions": "high"},
    )

    assert response.status_code == 409
    stored = (await client.get(f"/api/predictions/bus/{bus['id']}")).json()["predictions"][0]
    assert stored["prediction_accuracy"] == 100
    assert stored["factors"]["traffic_conditions"] == "medium"
    assert stored["predicted_arrival_time"] == prediction["predicted_arrival_time"]


@pytest.mark.asyncio
async def test_bus_status_update(client: AsyncClient):
    bus, route, driver = await _seed(client)
    spare = dict(BUS, bus_number="B-302", registration_number="KA-03-B-3020", status="inactive")
    parked = (await client.post("/api/buses", json=spare)).json()

    activated = await client.put(f"/api/buses/{parked['id']}/status", json={"status": "active"})
    assert activated.status_code == 200
    assert activated.json()["bus"]["status"] == "active"

    started = await client.post(
        f"/api/buses/{parked['id']}/trip/start",
        json={"route_id": route["id"], "driver_id": driver["id"]},
    )
    assert started.status_code == 200

    during_trip = await client.put(f"/api/buses/{parked['id']}/status", json={"status": "maintenance"})
    assert during_trip.status_code == 400

    on_trip = await client.put(f"/api/buses/{bus['id']}/status", json={"status": "on_trip"})
    assert on_trip.status_code == 422
    assert (await client.put("/api/buses/99/status", json={"status": "active"})).status_code == 404


@pytest.mark.asyncio
async def test_passenger_count_update(client: AsyncClient):
    bus, route, driver = await _seed(client)
    url = f"/api/buses/{bus['id']}/passengers"

    assert (await client.put(url, json={"passenger_count": 5})).status_code == 400

    await client.post(
        f"/api/buses/{bus['id']}/trip/start",
        json={"route_id": route["id"], "driver_id": driver["id"]},
    )
    over = await client.put(url, json={"passenger_count": 41})
    negative = await client.put(url, json={"passenger_count": -1})
    boarded = await client.put(url, json={"passenger_count": 15})

    assert over.status_code == 400
    assert negative.status_code == 422
    assert boarded.status_code == 200
    assert boarded.json()["current_capacity"] == 15
    assert boarded.json()["available_seats"] == 25


@pytest.mark.asyncio
async def test_location_is_committed_before_push(monkeypatch, client: AsyncClient):
    bus, _, _ = await _seed(client)
    events = []
    commit = AsyncSession.commit

    async def _recording_commit(self):
        events.append("commit")
        await commit(self)

    monkeypatch.setattr(AsyncSession, "commit", _recording_commit)
    subscriber = Mock()
    subscriber.send_json = AsyncMock(side_effect=lambda *args, **kwargs: events.append("push"))
    tracking_hub.join(subscriber, bus_room(bus["id"]))

    try:
        response = await client.put(
            f"/api/buses/{bus['id']}/location",
            json={"latitude": 12.9569, "longitude": 77.7011},
        )
    finally:
        tracking_hub.disconnect(subscriber)

    assert response.status_code == 200
    assert events[:2] == ["commit", "push"]


def test_tracking_socket_survives_malformed_commands():
    test_client = TestClient(app)
    with test_client.websocket_connect("/ws/tracking") as websocket:
        websocket.send_text("not json {")
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"action": "join", "bus_id": True})
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"action": "join", "bus_id": 9})
        assert websocket.receive_json() == {"event": "join", "data": {"room": "bus-9"}}

    assert tracking_hub.subscribers("bus-9") == 0


def test_parse_command():
    assert parse_command('{"action": "join", "bus_id": 3}') == ("join", 3)
    assert parse_command('{"action": "leave", "bus_id": 3}') == ("leave", 3)
    assert parse_command('{"action": "join", "bus_id": false}') is None
    assert parse_command('{"action": "join", "bus_id": "3"}') is None
    assert parse_command("[1, 2]") is None
    assert parse_command("{oops") is None
