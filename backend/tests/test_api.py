"""
HTTP / WebSocket API tests

Uygulama DB'si ve paylasilan local store session boyunca yasar;
her test kendi benzersiz diagram id'sini kullanir.
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from diagramsync.services.auth_service import AuthUser


def unique_id(prefix: str = "diagram") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def diagram_body(diagram_id: str, **extra) -> dict:
    body = {
        "id": diagram_id,
        "name": "Shop",
        "database_type": "postgresql",
        "tables": [
            {"id": f"{diagram_id}-users", "name": "users", "cols": [{"name": "id"}]},
            {"id": f"{diagram_id}-orders", "name": "orders"},
        ],
        "relationships": [{"id": f"{diagram_id}-r1", "source": "orders", "target": "users"}],
    }
    body.update(extra)
    return body


class TestHealth:

    def test_health(self, client: TestClient):
        # Act
        response = client.get("/health")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == {"enabled": True, "connected": True}
        assert data["realtime"]["backend"] == "memory"

    def test_ready(self, client: TestClient):
        data = client.get("/ready").json()
        assert data["status"] == "ready"
        assert data["realtime_enabled"] is True


class TestStorageSelection:
    """Anonim istekler local store'a, oturum acmis istekler remote store'a gider"""

    def test_anonymous_and_signed_in_stores_are_separate(self, client: TestClient, alice_headers):
        # Arrange
        local_id, remote_id = unique_id("local"), unique_id("remote")

        # Act
        assert client.post("/api/diagrams", json=diagram_body(local_id)).status_code == 201
        assert client.post("/api/diagrams", json=diagram_body(remote_id), headers=alice_headers).status_code == 201

        # Assert
        anonymous_ids = {d["id"] for d in client.get("/api/diagrams").json()}
        alice_ids = {d["id"] for d in client.get("/api/diagrams", headers=alice_headers).json()}
        assert local_id in anonymous_ids and remote_id not in anonymous_ids
        assert remote_id in alice_ids and local_id not in alice_ids

    def test_users_do_not_see_each_other(self, client: TestClient, alice_headers, bob_headers):
        # Arrange
        diagram_id = unique_id()
        client.post("/api/diagrams", json=diagram_body(diagram_id), headers=alice_headers)

        # Act
        response = client.get(f"/api/diagrams/{diagram_id}", headers=bob_headers)

        # Assert
        assert response.status_code == 404
        assert response.json()["error"] == "DIAG_001"

    def test_invalid_token_is_treated_as_anonymous(self, client: TestClient):
        diagram_id = unique_id("local")
        client.post("/api/diagrams", json=diagram_body(diagram_id))

        response = client.get(f"/api/diagrams/{diagram_id}", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 200


class TestDiagramEndpoints:

    def test_create_returns_hydrated_diagram(self, client: TestClient, alice_headers):
        # Arrange
        diagram_id = unique_id()

        # Act
        response = client.post("/api/diagrams", json=diagram_body(diagram_id), headers=alice_headers)

        # Assert
        assert response.status_code == 201
        data = response.json()
        assert data["database_type"] == "postgresql"
        assert {t["id"] for t in data["tables"]} == {f"{diagram_id}-users", f"{diagram_id}-orders"}
        assert data["areas"] == []

    def test_duplicate_create_is_conflict(self, client: TestClient, alice_headers):
        diagram_id = unique_id()
        client.post("/api/diagrams", json={"id": diagram_id, "name": "A"}, headers=alice_headers)

        response = client.post("/api/diagrams", json={"id": diagram_id, "name": "B"}, headers=alice_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "STORE_003"

    def test_get_hydrates_only_requested_collections(self, client: TestClient, alice_headers):
        # Arrange
        diagram_id = unique_id()
        client.post("/api/diagrams", json=diagram_body(diagram_id), headers=alice_headers)

        # Act
        plain = client.get(f"/api/diagrams/{diagram_id}", headers=alice_headers).json()
        with_tables = client.get(
            f"/api/diagrams/{diagram_id}", params={"include_tables": "true"}, headers=alice_headers
        ).json()

        # Assert
        assert "tables" not in plain
        assert len(with_tables["tables"]) == 2
        assert "relationships" not in with_tables

    def test_patch_fields(self, client: TestClient, alice_headers):
        # Arrange
        diagram_id = unique_id()
        client.post("/api/diagrams", json=diagram_body(diagram_id, database_edition="16"), headers=alice_headers)

        # Act
        response = client.patch(f"/api/diagrams/{diagram_id}", json={"name": "Store"}, headers=alice_headers)

        # Assert
        assert response.status_code == 200
        assert response.json()["name"] == "Store"
        assert response.json()["database_edition"] == "16"

    def test_rename_moves_content(self, client: TestClient, alice_headers):
        # Arrange
        old_id, new_id = unique_id(), unique_id()
        client.post("/api/diagrams", json=diagram_body(old_id), headers=alice_headers)

        # Act
        response = client.patch(f"/api/diagrams/{old_id}", json={"id": new_id}, headers=alice_headers)

        # Assert
        assert response.status_code == 200
        assert response.json()["id"] == new_id
        assert client.get(f"/api/diagrams/{old_id}", headers=alice_headers).status_code == 404
        tables = client.get(f"/api/diagrams/{new_id}/tables", headers=alice_headers).json()
        assert len(tables) == 2
        assert client.get(f"/api/diagrams/{old_id}/tables", headers=alice_headers).json() == []

    def test_patch_missing_diagram(self, client: TestClient, alice_headers):
        response = client.patch(f"/api/diagrams/{unique_id()}", json={"name": "x"}, headers=alice_headers)
        assert response.status_code == 404

    def test_delete_cascades(self, client: TestClient, alice_headers):
        # Arrange
        diagram_id = unique_id()
        client.post("/api/diagrams", json=diagram_body(diagram_id), headers=alice_headers)

        # Act
        response = client.delete(f"/api/diagrams/{diagram_id}", headers=alice_headers)

        # Assert
        assert response.status_code == 204
        assert client.get(f"/api/diagrams/{diagram_id}", headers=alice_headers).status_code == 404
        assert client.get(f"/api/diagrams/{diagram_id}/tables", headers=alice_headers).json() == []
        assert client.get(f"/api/diagrams/{diagram_id}/relationships", headers=alice_headers).json() == []

    def test_invalid_body_is_rejected(self, client: TestClient, alice_headers):
        response = client.post("/api/diagrams", json={"name": "no id"}, headers=alice_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "VAL_001"


class TestEntityEndpoints:

    @pytest.fixture
    def diagram_id(self, client: TestClient, alice_headers) -> str:
        diagram_id = unique_id()
        client.post("/api/diagrams", json=diagram_body(diagram_id), headers=alice_headers)
        return diagram_id

    def test_add_and_get_with_etag(self, client: TestClient, alice_headers, diagram_id: str):
        # Act
        created = client.post(
            f"/api/diagrams/{diagram_id}/areas",
            json={"id": f"{diagram_id}-a1", "name": "Sales"},
            headers=alice_headers,
        )
        fetched = client.get(f"/api/diagrams/{diagram_id}/areas/{diagram_id}-a1", headers=alice_headers)

        # Assert
        assert created.status_code == 201
        assert created.headers["etag"] == '"1"'
        assert fetched.json() == {"id": f"{diagram_id}-a1", "name": "Sales"}
        assert fetched.headers["etag"] == '"1"'

    def test_patch_merges_and_bumps_version(self, client: TestClient, alice_headers, diagram_id: str):
        # Act
        response = client.patch(
            f"/api/diagrams/{diagram_id}/tables/{diagram_id}-users",
            json={"attributes": {"name": "accounts"}},
            headers=alice_headers,
        )

        # Assert
        assert response.status_code == 200
        assert response.json() == {"id": f"{diagram_id}-users", "name": "accounts", "cols": [{"name": "id"}]}
        assert response.headers["etag"] == '"2"'

    def test_stale_if_match_is_conflict(self, client: TestClient, alice_headers, diagram_id: str):
        # Arrange
        url = f"/api/diagrams/{diagram_id}/tables/{diagram_id}-users"
        client.patch(url, json={"attributes": {"name": "first"}}, headers=alice_headers)

        # Act
        response = client.patch(
            url,
            json={"attributes": {"name": "second"}},
            headers={**alice_headers, "If-Match": '"1"'},
        )

        # Assert
        assert response.status_code == 409
        assert response.json()["error"] == "STORE_004"
        assert client.get(url, headers=alice_headers).json()["name"] == "first"

    def test_expected_version_in_body(self, client: TestClient, alice_headers, diagram_id: str):
        url = f"/api/diagrams/{diagram_id}/tables/{diagram_id}-orders"

        ok = client.patch(url, json={"attributes": {"a": 1}, "expected_version": 1}, headers=alice_headers)
        stale = client.patch(url, json={"attributes": {"a": 2}, "expected_version": 1}, headers=alice_headers)

        assert ok.status_code == 200
        assert stale.status_code == 409

    def test_bad_if_match_header(self, client: TestClient, alice_headers, diagram_id: str):
        response = client.patch(
            f"/api/diagrams/{diagram_id}/tables/{diagram_id}-users",
            json={"attributes": {}},
            headers={**alice_headers, "If-Match": "*"},
        )
        assert response.status_code == 400

    def test_put_table_upserts(self, client: TestClient, alice_headers, diagram_id: str):
        # Arrange
        url = f"/api/diagrams/{diagram_id}/tables/{diagram_id}-items"

        # Act
        inserted = client.put(url, json={"name": "items"}, headers=alice_headers)
        replaced = client.put(url, json={"title": "Items"}, headers=alice_headers)

        # Assert
        assert inserted.headers["etag"] == '"1"'
        assert replaced.headers["etag"] == '"2"'
        assert client.get(url, headers=alice_headers).json() == {"id": f"{diagram_id}-items", "title": "Items"}

    def test_put_with_mismatched_id(self, client: TestClient, alice_headers, diagram_id: str):
        response = client.put(
            f"/api/diagrams/{diagram_id}/tables/{diagram_id}-x",
            json={"id": "something-else"},
            headers=alice_headers,
        )
        assert response.status_code == 400

    def test_missing_entity(self, client: TestClient, alice_headers, diagram_id: str):
        get = client.get(f"/api/diagrams/{diagram_id}/dependencies/nope", headers=alice_headers)
        patch = client.patch(
            f"/api/diagrams/{diagram_id}/custom-types/nope", json={"attributes": {}}, headers=alice_headers
        )

        assert get.status_code == 404
        assert get.json()["error"] == "DIAG_002"
        assert patch.status_code == 404

    def test_entity_without_id_is_rejected(self, client: TestClient, alice_headers, diagram_id: str):
        response = client.post(f"/api/diagrams/{diagram_id}/areas", json={"name": "no id"}, headers=alice_headers)
        assert response.status_code == 400

    def test_delete_one_and_all(self, client: TestClient, alice_headers, diagram_id: str):
        # Act
        single = client.delete(f"/api/diagrams/{diagram_id}/tables/{diagram_id}-users", headers=alice_headers)
        remaining = client.get(f"/api/diagrams/{diagram_id}/tables", headers=alice_headers).json()
        everything = client.delete(f"/api/diagrams/{diagram_id}/tables", headers=alice_headers)

        # Assert
        assert single.status_code == 204
        assert [t["id"] for t in remaining] == [f"{diagram_id}-orders"]
        assert everything.status_code == 204
        assert client.get(f"/api/diagrams/{diagram_id}/tables", headers=alice_headers).json() == []


class TestSettingsEndpoints:

    def test_config_merges(self, client: TestClient, token_factory):
        # Arrange
        headers = {"Authorization": f"Bearer {token_factory(AuthUser(id=unique_id('user')))}"}

        # Act
        initial = client.get("/api/config", headers=headers)
        client.patch("/api/config", json={"theme": "dark"}, headers=headers)
        merged = client.patch("/api/config", json={"default_diagram_id": "d1"}, headers=headers)

        # Assert
        assert initial.json() is None
        assert merged.json() == {"default_diagram_id": "d1", "theme": "dark"}

    def test_filter_lifecycle(self, client: TestClient, alice_headers):
        # Arrange
        diagram_id = unique_id()
        url = f"/api/diagrams/{diagram_id}/filter"

        # Act
        put = client.put(url, json={"hiddenTableIds": ["t1"]}, headers=alice_headers)
        get = client.get(url, headers=alice_headers)
        deleted = client.delete(url, headers=alice_headers)
        missing = client.get(url, headers=alice_headers)

        # Assert
        assert put.json() == {"hiddenTableIds": ["t1"]}
        assert get.json() == {"hiddenTableIds": ["t1"]}
        assert deleted.status_code == 204
        assert missing.status_code == 404
        assert missing.json()["error"] == "DIAG_003"


class TestPresenceEndpoint:

    def test_requires_authentication(self, client: TestClient):
        response = client.get(f"/api/diagrams/{unique_id()}/presence")
        assert response.status_code == 401
        assert response.json()["error"] == "AUTH_001"

    def test_empty_diagram(self, client: TestClient, alice_headers):
        response = client.get(f"/api/diagrams/{unique_id()}/presence", headers=alice_headers)
        assert response.status_code == 200
        assert response.json() == []

    def test_lists_connected_viewers(self, client: TestClient, alice: AuthUser, bob_headers, token_factory):
        # Arrange
        diagram_id = unique_id()

        with client.websocket_connect(f"/ws/diagram/{diagram_id}?token={token_factory(alice)}") as ws:
            ws.receive_json()  # session
            ws.receive_json()  # presence

            # Act
            response = client.get(f"/api/diagrams/{diagram_id}/presence", headers=bob_headers)

        # Assert
        participants = response.json()
        assert [p["userId"] for p in participants] == ["user-alice"]
        assert participants[0]["name"] == "Alice"
        assert participants[0]["presenceRef"]


class TestDiagramSocket:

    def test_rejects_missing_token(self, client: TestClient):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/diagram/{unique_id()}"):
                pass
        assert exc_info.value.code == 4001

    def test_session_then_presence(self, client: TestClient, alice: AuthUser, token_factory):
        # Arrange
        diagram_id = unique_id()

        # Act
        with client.websocket_connect(f"/ws/diagram/{diagram_id}?token={token_factory(alice)}") as ws:
            session = ws.receive_json()
            presence = ws.receive_json()

        # Assert
        assert session["type"] == "session"
        assert session["diagramId"] == diagram_id
        assert presence["type"] == "presence"
        assert [p["name"] for p in presence["participants"]] == ["Alice"]
        assert presence["participants"][0]["sessionId"] == session["sessionId"]
        assert presence["others"] == []

    def test_ping_pong_and_unknown_message(self, client: TestClient, alice: AuthUser, token_factory):
        with client.websocket_connect(f"/ws/diagram/{unique_id()}?token={token_factory(alice)}") as ws:
            ws.receive_json()
            ws.receive_json()

            ws.send_json({"type": "ping"})
            pong = ws.receive_json()
            ws.send_json({"type": "dance"})
            error = ws.receive_json()
            ws.send_json({"type": "cursor", "cursor": {"x": "left"}})
            invalid_cursor = ws.receive_json()

        assert pong == {"type": "pong"}
        assert error["type"] == "error"
        assert error["error"] == "RT_003"
        assert invalid_cursor["error"] == "RT_003"

    def test_two_viewers_share_presence_and_cursors(self, client: TestClient, alice: AuthUser, bob: AuthUser, token_factory):
        # Arrange
        diagram_id = unique_id()

        with client.websocket_connect(f"/ws/diagram/{diagram_id}?token={token_factory(alice)}") as alice_ws:
            alice_ws.receive_json()  # session
            alice_ws.receive_json()  # presence: sadece Alice

            with client.websocket_connect(f"/ws/diagram/{diagram_id}?token={token_factory(bob)}") as bob_ws:
                bob_session = bob_ws.receive_json()["sessionId"]
                bob_presence = bob_ws.receive_json()
                alice_presence = alice_ws.receive_json()

                # Act
                bob_ws.send_json({"type": "cursor", "cursor": {"x": 0.25, "y": 0.75}})
                cursors = alice_ws.receive_json()
                bob_ws.send_json({"type": "cursor", "cursor": None})
                hidden = alice_ws.receive_json()

                bob_ws.close()
                after_leave = alice_ws.receive_json()

        # Assert
        assert [p["name"] for p in bob_presence["participants"]] == ["Alice", "Bob"]
        assert [p["name"] for p in bob_presence["others"]] == ["Alice"]
        assert [p["name"] for p in alice_presence["participants"]] == ["Alice", "Bob"]
        assert cursors["type"] == "cursors"
        assert cursors["cursors"] == [{
            "sessionId": bob_session,
            "x": 0.25,
            "y": 0.75,
            "color": cursors["cursors"][0]["color"],
            "label": "Bob",
        }]
        assert cursors["cursors"][0]["color"].startswith("hsl(")
        assert hidden == {"type": "cursors", "cursors": []}
        assert [p["name"] for p in after_leave["participants"]] == ["Alice"]
