"""Tests for the transformations API."""

from tests.factories import MAPPING, create_transformation


class TestTransformationsApi:
    """Tests for transformation CRUD."""

    async def test_create_and_get(self, client):
        created = await create_transformation(client)

        fetched = (await client.get(f"/api/transformations/{created['id']}")).json()["data"]

        assert fetched["name"] == "order-to-crm"
        assert fetched["type"] == "mapping"
        assert fetched["config"]["fixed"] == {"v": 1}

    async def test_invalid_config_rejected(self, client):
        for payload in (
            {"name": "t1", "type": "template", "config": {}},
            {"name": "t2", "type": "jsonpath", "config": {"mapping": {"x": "$.[[["}}},
            {"name": "t3", "type": "script", "config": {"script": "return 1"}},
            {"name": "t4", "type": "mapping", "config": {"mapping": {"x": 5}}},
            {"name": "t5", "type": "unknown", "config": {}},
        ):
            response = await client.post("/api/transformations", json=payload)
            assert response.status_code == 400, payload

    async def test_duplicate_name(self, client):
        await create_transformation(client)
        response = await client.post("/api/transformations", json=MAPPING)
        assert response.status_code == 400
        assert "already exists" in response.json()["message"]

    async def test_update_revalidates_against_type(self, client):
        created = await create_transformation(client)

        bad = await client.put(f"/api/transformations/{created['id']}", json={"type": "jsonpath"})
        assert bad.status_code == 400

        good = await client.put(
            f"/api/transformations/{created['id']}",
            json={"type": "jsonpath", "config": {"mapping": {"names": "$.properties.items[*].name"}}},
        )
        assert good.status_code == 200
        assert good.json()["data"]["type"] == "jsonpath"

    async def test_list_filters(self, client):
        await create_transformation(client)
        await create_transformation(client, name="slack-msg", type="slack", config={})

        listed = (await client.get("/api/transformations", params={"type": "slack"})).json()

        assert listed["count"] == 1
        assert listed["data"][0]["name"] == "slack-msg"

    async def test_toggle(self, client):
        created = await create_transformation(client)
        toggled = (await client.patch(f"/api/transformations/{created['id']}/toggle")).json()["data"]
        assert toggled["enabled"] is False

    async def test_try_transformation(self, client):
        created = await create_transformation(client)

        response = await client.post(
            f"/api/transformations/{created['id']}/test",
            params={"eventName": "order.paid"},
            json={"userId": "u1", "total": 42},
        )

        body = response.json()
        assert body["originalEvent"]["eventName"] == "order.paid"
        assert body["transformedData"] == {"who": "u1", "amt": 42, "v": 1}

    async def test_unknown_id(self, client):
        for method, path in (("get", ""), ("delete", ""), ("post", "/test")):
            response = await client.request(method.upper(), f"/api/transformations/missing{path}")
            assert response.status_code == 404
