import asyncio
import logging
import sys
from pathlib import Path

import settings as s_mod
from capability import detect_profile
from coordination import CoordinationEngine, PatternTiming
from devices.factory import create_device
from dispatcher import FallbackDispatcher, build_vacuum_chain
from extended_hold import ExtendedHoldSequencer
from handlers.tools import ToolHandlers
from scheduler import Scheduler
from server import build_server

_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(cfg) -> None:
    """ログ設定。stdout は MCP の stdio で使うので stderr とファイルにだけ出す。"""
    logging.basicConfig(
        level=getattr(logging, cfg.debug.log_level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        stream=sys.stderr,
    )
    if cfg.debug.log_to_file:
        log_path = Path(cfg.debug.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)


async def run(cfg) -> int:
    """デバイスに接続してプロファイルを判定し、MCP サーバーを起動する。"""
    device = create_device(cfg)
    if not await device.connect():
        logger.error(f"デバイスに接続できませんでした（{cfg.device.control_mode}: {cfg.server.url}）")
        return 1

    dispatcher = None
    try:
        profile = detect_profile(device.capability_attributes())
        dispatcher = FallbackDispatcher(
            device, profile,
            chain=build_vacuum_chain(cfg.patterns.linear_duration_ms),
            zero_on_failed_encoding=cfg.dispatcher.zero_on_failed_encoding,
        )
        scheduler = Scheduler()
        engine = CoordinationEngine(dispatcher, scheduler, PatternTiming(
            combo_pulse_interval_ms=cfg.patterns.combo_pulse_interval_ms,
            wave_steps=cfg.patterns.wave_steps,
        ))
        sequencer = ExtendedHoldSequencer(dispatcher, scheduler, restore_steps=cfg.patterns.restore_steps)
        server = build_server(ToolHandlers(engine, sequencer), cfg.mcp.server_name)

        logger.info(f"connected: {device.name} (profile={profile.value})")
        await server.run_stdio_async()
        return 0
    finally:
        if dispatcher is not None:
            await dispatcher.stop_quietly()
        await device.disconnect()


def main() -> int:
    cfg = s_mod.settings
    setup_logging(cfg)
    logger.info("===== Sam Neo MCP Server Starting =====")
    try:
        return asyncio.run(run(cfg))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    finally:
        logger.info("===== Sam Neo MCP Server Stopped =====")


if __name__ == "__main__":
    sys.exit(main())
