"""Buttplug デバイス実装（Intiface への WebSocket 直接接続）

Buttplug プロトコル v3 の JSON メッセージを直接やり取りする。
フォールバックチェーンで「デバイスが報告していないアクチュエータ」にも
コマンドを投げる必要があるため、クライアント側で検証しない生の実装にしている。
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Sequence

import websockets

from errors import DeviceCommandFailed
from .base import (
    ActuatorDescriptor, ActuatorKind, LinearPoint, ScalarEntry,
    describe_attributes, parse_device_messages,
)

logger = logging.getLogger(__name__)

_MESSAGE_VERSION = 3


def encode_message(msg_type: str, msg_id: int, **fields: Any) -> str:
    """1 メッセージをプロトコルのワイヤ形式（JSON 配列）にする。"""
    body = {"Id": msg_id}
    body.update(fields)
    return json.dumps([{msg_type: body}])


def decode_messages(raw: str | bytes) -> list[tuple[str, dict]]:
    """受信フレームを (メッセージ種別, 本体) のリストに分解する。"""
    decoded = json.loads(raw)
    if not isinstance(decoded, list):
        decoded = [decoded]
    messages = []
    for item in decoded:
        if not isinstance(item, dict) or len(item) != 1:
            logger.warning(f"Buttplug: malformed message ignored: {item!r}")
            continue
        msg_type, body = next(iter(item.items()))
        messages.append((msg_type, body if isinstance(body, dict) else {}))
    return messages


class ButtplugDevice:
    """Intiface サーバー経由の Sam Neo。ActuatorPort Protocol に準拠。"""

    def __init__(self, url: str, client_name: str, name_prefix: str,
                 scan_timeout: float = 15.0, command_timeout: float = 5.0):
        self._url = url
        self._client_name = client_name
        self._name_prefix = name_prefix
        self._scan_timeout = scan_timeout
        self._command_timeout = command_timeout

        self._ws = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future] = {}
        self._reader_task: asyncio.Task | None = None
        self._ping_task: asyncio.Task | None = None
        self._device_found: asyncio.Future | None = None
        self._should_stop = False

        self._device_index: int | None = None
        self._device_name: str = ""
        self._attributes: dict[str, list[ActuatorDescriptor]] = {}

    @property
    def name(self) -> str:
        return self._device_name

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._device_index is not None

    # ------------------------------------------------------------------ #
    # 接続・切断                                                           #
    # ------------------------------------------------------------------ #

    async def connect(self) -> bool:
        """サーバーに接続し、名前が一致するデバイスを見つけるまでスキャンする。"""
        loop = asyncio.get_running_loop()
        try:
            logger.info(f"Buttplug connecting to {self._url}...")
            self._ws = await websockets.connect(self._url)
            self._reader_task = asyncio.ensure_future(self._reader_loop())

            server_info = await self._request("RequestServerInfo", ClientName=self._client_name,
                                              MessageVersion=_MESSAGE_VERSION)
            logger.info(f"Buttplug server: {server_info.get('ServerName', '?')} "
                        f"(MaxPingTime={server_info.get('MaxPingTime', 0)}ms)")
            max_ping = server_info.get("MaxPingTime") or 0
            if max_ping > 0:
                self._ping_task = asyncio.ensure_future(self._ping_loop(max_ping / 2000))

            self._device_found = loop.create_future()
            device_list = await self._request("RequestDeviceList")
            for device in device_list.get("Devices", []):
                self._on_device_added(device)

            if not self._device_found.done():
                logger.info(f"Buttplug scanning for '{self._name_prefix}' (timeout={self._scan_timeout:.0f}s)...")
                await self._request("StartScanning")
                try:
                    await asyncio.wait_for(asyncio.shield(self._device_found), timeout=self._scan_timeout)
                finally:
                    await self._request_quietly("StopScanning")

            logger.info(f"Buttplug connected: {self._device_name} (index={self._device_index}) "
                        f"attributes={describe_attributes(self._attributes)}")
            return True

        except asyncio.TimeoutError:
            logger.error(f"Buttplug scan: '{self._name_prefix}' is not found")
        except (OSError, websockets.WebSocketException, DeviceCommandFailed) as e:
            logger.error(f"Buttplug connect failed: [{type(e).__name__}] {e!r}")
        await self.disconnect()
        return False

    async def disconnect(self) -> None:
        self._should_stop = True
        for task in (self._ping_task, self._reader_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"Buttplug background task ended with error: [{type(e).__name__}] {e}")
        self._ping_task = None
        self._reader_task = None

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"Buttplug close error (ignored): {e}")
            self._ws = None
        self._fail_pending("connection closed")
        self._device_index = None
        logger.info("Buttplug disconnected")

    # ------------------------------------------------------------------ #
    # ActuatorPort インターフェース                                        #
    # ------------------------------------------------------------------ #

    def capability_attributes(self) -> dict[str, list[ActuatorDescriptor]]:
        return {command: list(descriptors) for command, descriptors in self._attributes.items()}

    async def combined_command(self, values: Sequence[float]) -> None:
        """Vibrate アクチュエータへ報告順に値を割り当てる（初代の vibrate([a, b]) 相当）。"""
        vibrators = [d.index for d in self._attributes.get("ScalarCmd", [])
                     if d.kind == ActuatorKind.VIBRATE.value]
        if len(vibrators) < len(values):
            vibrators = list(range(len(values)))
        scalars = [
            {"Index": index, "Scalar": float(value), "ActuatorType": ActuatorKind.VIBRATE.value}
            for index, value in zip(vibrators, values)
        ]
        await self._device_command("ScalarCmd", Scalars=scalars)

    async def indexed_command(self, entries: Sequence[ScalarEntry]) -> None:
        scalars = [
            {"Index": e.index, "Scalar": float(e.value), "ActuatorType": ActuatorKind(e.kind).value}
            for e in entries
        ]
        await self._device_command("ScalarCmd", Scalars=scalars)

    async def positional_command(self, points: Sequence[LinearPoint]) -> None:
        vectors = [
            {"Index": 0, "Duration": int(p.duration_ms), "Position": float(p.value)}
            for p in points
        ]
        await self._device_command("LinearCmd", Vectors=vectors)

    async def halt(self) -> None:
        await self._device_command("StopDeviceCmd")

    # ------------------------------------------------------------------ #
    # 内部: 送受信                                                         #
    # ------------------------------------------------------------------ #

    async def _device_command(self, msg_type: str, **fields: Any) -> None:
        if self._device_index is None:
            raise DeviceCommandFailed(f"{msg_type}: no device bound")
        await self._request(msg_type, DeviceIndex=self._device_index, **fields)

    async def _request(self, msg_type: str, **fields: Any) -> dict:
        """送信して同じ Id の応答を待つ。Error 応答とタイムアウトは DeviceCommandFailed。"""
        if self._ws is None:
            raise DeviceCommandFailed(f"{msg_type}: not connected")

        msg_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        try:
            await self._ws.send(encode_message(msg_type, msg_id, **fields))
            reply_type, body = await asyncio.wait_for(future, timeout=self._command_timeout)
        except asyncio.TimeoutError:
            raise DeviceCommandFailed(f"{msg_type}: no reply within {self._command_timeout}s") from None
        except websockets.ConnectionClosed as e:
            raise DeviceCommandFailed(f"{msg_type}: connection closed ({e})") from e
        finally:
            self._pending.pop(msg_id, None)

        if reply_type == "Error":
            raise DeviceCommandFailed(
                f"{msg_type}: {body.get('ErrorMessage', 'unknown error')} (code={body.get('ErrorCode')})"
            )
        return body

    async def _request_quietly(self, msg_type: str) -> None:
        try:
            await self._request(msg_type)
        except DeviceCommandFailed as e:
            logger.debug(f"Buttplug {msg_type} failed (ignored): {e}")

    async def _reader_loop(self) -> None:
        logger.debug("Buttplug reader loop started")
        try:
            async for raw in self._ws:
                try:
                    messages = decode_messages(raw)
                except ValueError as e:
                    # 壊れたフレームは捨てて読み続ける
                    logger.warning(f"Buttplug: undecodable frame ignored ({e}): {raw!r:.200}")
                    continue
                for msg_type, body in messages:
                    try:
                        self._handle_message(msg_type, body)
                    except Exception as e:
                        logger.error(f"Buttplug: failed to handle {msg_type}: [{type(e).__name__}] {e}", exc_info=True)
        except websockets.ConnectionClosed as e:
            if not self._should_stop:
                logger.warning(f"Buttplug connection lost: {e}")
        finally:
            self._fail_pending("connection closed")
            logger.debug("Buttplug reader loop stopped")

    def _handle_message(self, msg_type: str, body: dict) -> None:
        msg_id = body.get("Id", 0)
        future = self._pending.get(msg_id) if msg_id else None
        if future is not None and not future.done():
            future.set_result((msg_type, body))
            return

        if msg_type == "DeviceAdded":
            self._on_device_added(body)
        elif msg_type == "DeviceRemoved":
            if body.get("DeviceIndex") == self._device_index:
                logger.warning(f"Buttplug device removed: {self._device_name}")
                self._device_index = None
        elif msg_type == "ScanningFinished":
            logger.debug("Buttplug scanning finished")
        else:
            logger.debug(f"Buttplug unsolicited {msg_type}: {body}")

    def _on_device_added(self, device: dict) -> None:
        name = device.get("DeviceName", "")
        if self._device_index is not None:
            return
        if not name.startswith(self._name_prefix):
            logger.info(f"Buttplug ignoring device: {name}")
            return
        self._device_index = device.get("DeviceIndex")
        self._device_name = name
        self._attributes = parse_device_messages(device.get("DeviceMessages"))
        logger.info(f"Buttplug device found: {name}")
        if self._device_found is not None and not self._device_found.done():
            self._device_found.set_result(device)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(DeviceCommandFailed(reason))
        self._pending.clear()

    # ------------------------------------------------------------------ #
    # Keep-alive                                                           #
    # ------------------------------------------------------------------ #

    async def _ping_loop(self, interval: float) -> None:
        logger.debug(f"Buttplug ping loop started (interval={interval:.1f}s)")
        while not self._should_stop:
            await asyncio.sleep(interval)
            try:
                await self._request("Ping")
                logger.debug("Buttplug ping sent")
            except DeviceCommandFailed as e:
                logger.warning(f"Buttplug ping failed: {e}")
        logger.debug("Buttplug ping loop stopped")
