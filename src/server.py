"""MCP サーバー登録

ToolHandlers の各処理を MCP ツールとして公開する。
エンジンはデバイスの排他所有を前提にしているので、ツール実行はロックで直列化する。
"""

import asyncio
import logging
from typing import Literal

from mcp.server.fastmcp import FastMCP

from handlers.tools import ToolHandlers

logger = logging.getLogger(__name__)

COMBO_DESCRIPTION = (
    "A tool for simultaneous control of both vibration and vacuum/suction functionality of the "
    "Svakom Sam Neo. Vibration and vacuum can run synchronized (together), alternating (opposite) "
    "or independent (separate patterns; Sam Neo 2 series only)."
)
VACUUM_DESCRIPTION = (
    "A tool for controlling the vacuum/suction functionality of the Svakom Sam Neo, "
    "with constant, pulse or wave patterns."
)
PISTON_DESCRIPTION = (
    "A tool for operating the Svakom Sam Neo with a stepped piston-like vibration ramp."
)
EXTENDED_O_DESCRIPTION = (
    "Extended O mode: instantly reduces both vibration and suction to a minimum level, holds it, "
    "then restores the previous intensities instantly or gradually."
)


def build_server(handlers: ToolHandlers, name: str = "Svakom Sam Neo") -> FastMCP:
    """ツールを登録した FastMCP サーバーを返す。"""
    server = FastMCP(name)
    device_lock = asyncio.Lock()

    async def serialized(tool: str, call):
        if device_lock.locked():
            logger.info(f"[Server] {tool} waiting for the running invocation to finish")
        async with device_lock:
            return await call()

    @server.tool(name="Svakom-Sam-Neo-Combo", description=COMBO_DESCRIPTION)
    async def combo(
        duration: int,
        steps: int = 20,
        vibration_power: float = 0.5,
        vacuum_intensity: float = 0.5,
        sync_mode: Literal["synchronized", "alternating", "independent"] = "synchronized",
        vacuum_pattern: Literal["constant", "pulse", "wave"] = "constant",
    ) -> str:
        return await serialized("Combo", lambda: handlers.combo(
            duration=duration, steps=steps, vibration_power=vibration_power,
            vacuum_intensity=vacuum_intensity, sync_mode=sync_mode, vacuum_pattern=vacuum_pattern,
        ))

    @server.tool(name="Svakom-Sam-Neo-Vacuum", description=VACUUM_DESCRIPTION)
    async def vacuum(
        intensity: float = 0.5,
        duration: int = 1000,
        pattern: Literal["constant", "pulse", "wave"] = "constant",
        pulse_interval: int = 500,
    ) -> str:
        return await serialized("Vacuum", lambda: handlers.vacuum(
            intensity=intensity, duration=duration, pattern=pattern, pulse_interval=pulse_interval,
        ))

    @server.tool(name="Svakom-Sam-Neo-Piston", description=PISTON_DESCRIPTION)
    async def piston(duration: int, steps: int = 20, vibration_power: float = 0.5) -> str:
        return await serialized("Piston", lambda: handlers.piston(
            duration=duration, steps=steps, vibration_power=vibration_power,
        ))

    @server.tool(name="Svakom-Sam-Neo-ExtendedO", description=EXTENDED_O_DESCRIPTION)
    async def extended_o(
        current_vibration: float,
        current_vacuum: float,
        hold_duration: int = 10000,
        minimum_level: float = 0.1,
        restore_duration: int = 500,
    ) -> str:
        return await serialized("ExtendedO", lambda: handlers.extended_o(
            current_vibration=current_vibration, current_vacuum=current_vacuum,
            hold_duration=hold_duration, minimum_level=minimum_level, restore_duration=restore_duration,
        ))

    return server
