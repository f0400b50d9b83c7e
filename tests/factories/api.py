"""Create resources through the HTTP API."""

HOOK = {
    "name": "crm-webhook",
    "type": "webhook",
    "url": "http://hooks.test/crm",
    "eventTypes": ["order.paid"],
    "secretKey": "s3cr3t",
    "config": {"headers": {"X-Source": "eventrelay"}},
}

MAPPING = {
    "name": "order-to-crm",
    "type": "mapping",
    "config": {
        "mapping": {"who": "properties.userId", "amt": ["properties.amount", "properties.total"]},
        "fixed": {"v": 1},
    },
}

PAID_PLANS = {"type": "property", "property": "properties.plan", "operator": "in", "value": ["pro", "team"]}


async def create_destination(client, **overrides):
    response = await client.post("/api/destinations", json={**HOOK, **overrides})
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def create_transformation(client, **overrides):
    response = await client.post("/api/transformations", json={**MAPPING, **overrides})
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def create_route(client, transformation_id, destination_id, **overrides):
    payload = {
        "name": "paid-orders",
        "eventTypes": ["order.*"],
        "transformationId": transformation_id,
        "destinationId": destination_id,
        "condition": PAID_PLANS,
        "priority": 10,
    }
    payload.update(overrides)
    response = await client.post("/api/routes", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def create_pipeline(client):
    """Mapping transformation -> crm-webhook, routed for paid plans only."""
    transformation = await create_transformation(client)
    destination = await create_destination(client)
    route = await create_route(client, transformation["id"], destination["id"])
    return transformation, destination, route


async def log_event(client, event_name="order.paid", **properties):
    response = await client.post("/api/events", json={"eventName": event_name, "properties": properties})
    assert response.status_code == 201, response.text
    return response.json()
