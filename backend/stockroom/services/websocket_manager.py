"""
WebSocket接続管理サービス

このファイルでは、在庫変更・棚卸進捗をリアルタイム配信するWebSocket接続の管理を
実装しています。接続の管理、メッセージのブロードキャスト、Redis Pub/Subとの連携を
担当します。

主要機能:
- WebSocket接続の管理（接続・切断）
- タイプ別接続分類（在庫・棚卸・アラート）
- Redis Pub/Sub経由のイベント配信（複数インスタンス対応）
- 配信失敗時のフォールバック（同一プロセス内の直接配信）

設計原則:
- ファンアウトパターン（1対多通信）
- イベント配信は fire-and-forget（配信失敗で元の書き込みを失敗させない）

技術スタック:
- FastAPI WebSocket（リアルタイム通信）
- Redis Pub/Sub（メッセージブローカー）
- Asyncio（非同期処理）
- Structlog（構造化ログ）
"""
from fastapi import WebSocket
from typing import List, Dict, Any, Optional
import json
import structlog
import asyncio
from datetime import datetime, timezone

from stockroom.core.config import settings
from stockroom.core.redis_client import redis_manager, CHANNELS

# 構造化ログ設定
logger = structlog.get_logger(__name__)

# Redisチャンネル → WebSocket接続タイプ
CHANNEL_ROUTES = {
    "inventory_updates": "inventory",
    "cycle_count_updates": "cycle_counts",
    "stock_alerts": "alerts",
}


class ConnectionManager:
    """
    WebSocket接続管理マネージャークラス

    接続分類:
    - inventory: 在庫アイテムの作成・更新・削除通知
    - cycle_counts: 棚卸セッションの進捗・状態遷移通知
    - alerts: 低在庫アラート

    主要責務:
    1. WebSocket接続の受け入れ・管理
    2. タイプ別メッセージルーティング
    3. Redis Pub/Sub統合
    """

    def __init__(self):
        # Store active connections by type
        self.active_connections: Dict[str, List[WebSocket]] = {
            "inventory": [],
            "cycle_counts": [],
            "alerts": []
        }
        self.subscriber_task: Optional[asyncio.Task] = None
        self.is_listening = False

    async def connect(self, websocket: WebSocket, connection_type: str = "inventory"):
        """
        WebSocket接続受け入れ・登録

        タイプ判定ロジック:
        - /cycle-counts → "cycle_counts" タイプ
        - /alerts → "alerts" タイプ
        - その他 → connection_type パラメータ使用

        Redis購読タスクは初回接続時に一度だけ開始します（REALTIME_ENABLED時のみ）。
        """
        await websocket.accept()

        # Determine connection type from WebSocket path
        if "cycle-count" in str(websocket.url):
            connection_type = "cycle_counts"
        elif "alert" in str(websocket.url):
            connection_type = "alerts"

        if connection_type not in self.active_connections:
            self.active_connections[connection_type] = []

        self.active_connections[connection_type].append(websocket)

        # Start Redis subscriber if not already running
        if settings.REALTIME_ENABLED and not self.is_listening:
            self.subscriber_task = asyncio.create_task(self._start_redis_subscriber())
            self.is_listening = True

        logger.info("WebSocket client connected",
                    connection_type=connection_type,
                    total_connections=self.connection_count)

    def disconnect(self, websocket: WebSocket):
        """Remove a connection from whichever pool holds it"""
        for connection_type, connections in self.active_connections.items():
            if websocket in connections:
                connections.remove(websocket)
                logger.info("WebSocket client disconnected",
                            connection_type=connection_type,
                            remaining_connections=len(connections))
                break

    @property
    def connection_count(self) -> int:
        return sum(len(conns) for conns in self.active_connections.values())

    async def broadcast_to_type(self, message: Dict[str, Any], connection_type: str):
        """
        タイプ別メッセージブロードキャスト

        失敗した接続は自動的にクリーンアップされます。
        """
        if connection_type not in self.active_connections:
            return

        connections = self.active_connections[connection_type].copy()
        if not connections:
            return

        message_str = json.dumps(message, default=str)
        disconnected = []

        for connection in connections:
            try:
                await connection.send_text(message_str)
            except Exception as e:
                logger.warning("Failed to send message to WebSocket client", error=str(e))
                disconnected.append(connection)

        # Remove disconnected clients
        for connection in disconnected:
            self.disconnect(connection)

        logger.info("Broadcasted message to WebSocket clients",
                    connection_type=connection_type,
                    successful_sends=len(connections) - len(disconnected),
                    failed_sends=len(disconnected))

    async def broadcast_to_all(self, message: Dict[str, Any]):
        """Broadcast message to all active connections"""
        for connection_type in self.active_connections:
            await self.broadcast_to_type(message, connection_type)

    async def send_event(self, channel_key: str, message_type: str, data: Dict[str, Any]):
        """
        イベント配信（fire-and-forget）

        REALTIME_ENABLED時はRedisチャンネルへ配信し、購読タスク経由で各インスタンスの
        WebSocketクライアントへ届けます。Redisが無効・配信失敗の場合は
        同一プロセスのクライアントへ直接配信します。配信エラーは呼び出し元に伝播しません。

        Args:
            channel_key (str): CHANNELS のキー（inventory_updates 等）
            message_type (str): メッセージ種別（inventory_update 等）
            data (Dict[str, Any]): 配信データ
        """
        message = {
            "type": message_type,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
        connection_type = CHANNEL_ROUTES.get(channel_key, "inventory")

        if settings.REALTIME_ENABLED:
            try:
                await redis_manager.publish_message(CHANNELS[channel_key], message)
                return
            except Exception as e:
                logger.warning("Realtime publish failed, delivering locally",
                               channel=channel_key, message_type=message_type, error=str(e))

        try:
            await self.broadcast_to_type(message, connection_type)
        except Exception as e:
            logger.warning("Local broadcast failed", channel=channel_key, error=str(e))

    async def send_inventory_update(self, inventory_data: Dict[str, Any]):
        await self.send_event("inventory_updates", "inventory_update", inventory_data)

    async def send_cycle_count_update(self, cycle_count_data: Dict[str, Any]):
        await self.send_event("cycle_count_updates", "cycle_count_update", cycle_count_data)

    async def send_stock_alert(self, alert_data: Dict[str, Any]):
        await self.send_event("stock_alerts", "stock_alert", alert_data)

    async def stop(self):
        """Stop the Redis subscriber task"""
        self.is_listening = False
        if self.subscriber_task is not None:
            self.subscriber_task.cancel()
            try:
                await self.subscriber_task
            except asyncio.CancelledError:
                pass
            self.subscriber_task = None

    async def _start_redis_subscriber(self):
        """Start Redis subscriber to listen for updates"""
        subscribers = []
        try:
            channels_to_subscribe = [
                CHANNELS["inventory_updates"],
                CHANNELS["cycle_count_updates"],
                CHANNELS["stock_alerts"],
                CHANNELS["system_notifications"]
            ]

            for channel in channels_to_subscribe:
                pubsub = await redis_manager.subscribe_to_channel(channel)
                subscribers.append((channel, pubsub))

            logger.info("Started Redis subscribers for WebSocket broadcasting",
                        channels=channels_to_subscribe)

            # Listen for messages
            while self.is_listening:
                for channel, pubsub in subscribers:
                    try:
                        message = await asyncio.wait_for(
                            pubsub.get_message(ignore_subscribe_messages=True),
                            timeout=1.0
                        )
                        if message and message.get("data"):
                            await self._handle_redis_message(channel, message["data"])
                    except asyncio.TimeoutError:
                        continue
                    except Exception as e:
                        logger.error("Error processing Redis message",
                                     channel=channel, error=str(e))
                await asyncio.sleep(0.1)

        except Exception as e:
            logger.error("Redis subscriber error", error=str(e))
            self.is_listening = False
        finally:
            # Cleanup subscribers
            for _, pubsub in subscribers:
                await pubsub.aclose()

    async def _handle_redis_message(self, channel: str, message_data: str):
        """Route an incoming Redis message to WebSocket clients"""
        try:
            message = json.loads(message_data)
        except json.JSONDecodeError:
            logger.warning("Received invalid JSON message from Redis",
                           channel=channel, message=message_data)
            return

        message["channel"] = channel

        if channel == CHANNELS["system_notifications"]:
            await self.broadcast_to_all(message)
            return

        for channel_key, connection_type in CHANNEL_ROUTES.items():
            if channel == CHANNELS[channel_key]:
                await self.broadcast_to_type(message, connection_type)
                return


# Process-wide connection manager
manager = ConnectionManager()
