"""WebSocket fan-out and health endpoint tests."""

import json

import pytest

from stockroom.core.config import settings
from stockroom.core.redis_client import CHANNELS, redis_manager
from stockroom.services.websocket_manager import ConnectionManager


class FakeWebSocket:
    def __init__(self, path="/ws/inventory", fail=False):
        self.url = f"ws://test{path}"
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_connections_are_routed_by_path(self):
        manager = ConnectionManager()
        inventory_ws = FakeWebSocket()
        count_ws = FakeWebSocket("/ws/cycle-counts")

        await manager.connect(inventory_ws)
        await manager.connect(count_ws)

        assert inventory_ws.accepted
        assert manager.active_connections["inventory"] == [inventory_ws]
        assert manager.active_connections["cycle_counts"] == [count_ws]
        assert manager.connection_count == 2

        manager.disconnect(count_ws)
        assert manager.connection_count == 1

    @pytest.mark.asyncio
    async def test_local_delivery_when_realtime_disabled(self):
        manager = ConnectionManager()
        count_ws = FakeWebSocket("/ws/cycle-counts")
        inventory_ws = FakeWebSocket()
        await manager.connect(count_ws)
        await manager.connect(inventory_ws)

        await manager.send_cycle_count_update({"id": 7, "event": "entry_counted"})

        assert len(count_ws.sent) == 1
        assert count_ws.sent[0]["type"] == "cycle_count_update"
        assert count_ws.sent[0]["data"] == {"id": 7, "event": "entry_counted"}
        assert inventory_ws.sent == []

    @pytest.mark.asyncio
    async def test_dead_sockets_are_dropped(self):
        manager = ConnectionManager()
        dead = FakeWebSocket(fail=True)
        alive = FakeWebSocket()
        await manager.connect(dead)
        await manager.connect(alive)

        await manager.send_inventory_update({"action": "updated"})

        assert manager.active_connections["inventory"] == [alive]
        assert alive.sent[0]["data"] == {"action": "updated"}

    @pytest.mark.asyncio
    async def test_publish_failure_falls_back_to_local(self, monkeypatch):
        async def broken_publish(channel, message):
            raise ConnectionError("redis down")

        monkeypatch.setattr(settings, "REALTIME_ENABLED", True)
        monkeypatch.setattr(redis_manager, "publish_message", broken_publish)
        manager = ConnectionManager()
        alert_ws = FakeWebSocket("/ws/alerts")
        manager.active_connections["alerts"].append(alert_ws)

        await manager.send_stock_alert({"barcode": "1", "alert_level": "critical"})

        assert alert_ws.sent[0]["type"] == "stock_alert"

    @pytest.mark.asyncio
    async def test_redis_messages_fan_out(self):
        manager = ConnectionManager()
        inventory_ws = FakeWebSocket()
        count_ws = FakeWebSocket("/ws/cycle-counts")
        await manager.connect(inventory_ws)
        await manager.connect(count_ws)

        await manager._handle_redis_message(CHANNELS["inventory_updates"], json.dumps({"type": "inventory_update"}))
        await manager._handle_redis_message(CHANNELS["system_notifications"], json.dumps({"type": "notice"}))
        await manager._handle_redis_message(CHANNELS["inventory_updates"], "not json")

        assert [m["type"] for m in inventory_ws.sent] == ["inventory_update", "notice"]
        assert [m["type"] for m in count_ws.sent] == ["notice"]
        assert inventory_ws.sent[0]["channel"] == CHANNELS["inventory_updates"]


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_needs_no_actor(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["realtime"] is False
