"""ツールハンドラ

1 回のツール呼び出し = 検証 → シーケンス実行 → 要約テキスト。
失敗はすべてここで説明付きのテキストに変換し、プロセスは止めない。
デバイスへの同時アクセスはフレームワーク側の直列化に任せる。
"""

import asyncio
import logging

from coordination import ComboPlan, CoordinationEngine
from devices.base import describe_attributes
from errors import AllEncodingsFailed, HapticsError, InvalidParameters
from extended_hold import ExtendedHoldSequencer, HoldPlan
from .requests import ComboRequest, ExtendedORequest, PistonRequest, VacuumRequest, parse_request

logger = logging.getLogger(__name__)


def _format_error(e: Exception) -> str:
    if isinstance(e, InvalidParameters):
        return f"Error: invalid parameters - {e}"
    if isinstance(e, AllEncodingsFailed):
        lines = [f"Error: {e}", "Encoding attempts:"]
        lines.extend(f"  - {a.label}: {a.reason}" for a in e.attempts)
        return "\n".join(lines)
    return f"Error: {e}"


class ToolHandlers:
    """各ツールの実処理。"""

    def __init__(self, engine: CoordinationEngine, sequencer: ExtendedHoldSequencer):
        self._engine = engine
        self._sequencer = sequencer

    @property
    def _device(self) -> str:
        return self._engine.profile.value

    # ------------------------------------------------------------------ #
    # ツール                                                               #
    # ------------------------------------------------------------------ #

    async def combo(self, **params) -> str:
        async def run() -> str:
            req = parse_request(ComboRequest, params)
            report = await self._engine.run_combo(ComboPlan(
                duration_ms=req.duration,
                steps=req.steps,
                vibration_power=req.vibration_power,
                vacuum_intensity=req.vacuum_intensity,
                sync_mode=req.sync_mode,
                vacuum_pattern=req.vacuum_pattern,
            ))
            text = (
                f"Combo stimulation completed - duration: {req.duration}ms, steps: {req.steps}, "
                f"vibration: {req.vibration_power}, vacuum: {req.vacuum_intensity}, "
                f"mode: {report.effective_mode.value}, device: {self._device}, "
                f"vacuum encoding: {report.vacuum_encoding}"
            )
            return "\n".join([text, *report.notices])

        return await self._invoke("Combo", run)

    async def vacuum(self, **params) -> str:
        async def run() -> str:
            req = parse_request(VacuumRequest, params)
            report = await self._engine.run_vacuum(req.intensity, req.duration, req.pattern, req.pulse_interval)
            if report.steps_issued == 0:
                # pulse の 1 周期（ON + OFF）が duration に収まらない
                return (
                    f"Vacuum operation completed - no pulse cycle fits in {req.duration}ms "
                    f"with pulse interval {req.pulse_interval}ms, no vacuum step issued, device: {self._device}"
                )
            return (
                f"Vacuum operation completed - intensity: {req.intensity}, duration: {req.duration}ms, "
                f"pattern: {req.pattern.value}, method: {report.vacuum_encoding}, device: {self._device}"
            )

        return await self._invoke("Vacuum", run, with_capabilities=True)

    async def piston(self, **params) -> str:
        async def run() -> str:
            req = parse_request(PistonRequest, params)
            report = await self._engine.run_piston(req.duration, req.steps, req.vibration_power)
            return (
                f"Piston motion completed - duration: {req.duration}ms, steps: {report.steps_issued}, "
                f"vibrationPower: {req.vibration_power}, device: {self._device}"
            )

        return await self._invoke("Piston", run)

    async def extended_o(self, **params) -> str:
        async def run() -> str:
            req = parse_request(ExtendedORequest, params)
            report = await self._sequencer.run(HoldPlan(
                current_vibration=req.current_vibration,
                current_vacuum=req.current_vacuum,
                hold_ms=req.hold_duration,
                minimum_level=req.minimum_level,
                restore_ms=req.restore_duration,
            ))
            return (
                f"Extended O completed - held at {report.minimum_level} for {report.hold_ms}ms, "
                f"restored to vibration: {report.restored_vibration}, vacuum: {report.restored_vacuum}, "
                f"device: {self._device}, vacuum encoding: {report.vacuum_encoding}"
            )

        return await self._invoke("ExtendedO", run)

    # ------------------------------------------------------------------ #
    # 内部                                                                 #
    # ------------------------------------------------------------------ #

    async def _invoke(self, tool: str, run, with_capabilities: bool = False) -> str:
        try:
            return await run()
        except asyncio.CancelledError:
            logger.warning(f"[{tool}] Invocation cancelled")
            raise
        except HapticsError as e:
            logger.error(f"[{tool}] Failed: [{type(e).__name__}] {e}")
            text = _format_error(e)
            if with_capabilities and not isinstance(e, InvalidParameters):
                # 失敗の切り分け用にデバイスが報告した能力属性を添える
                attributes = describe_attributes(self._engine.port.capability_attributes())
                text = f"{tool} control failed. Device capabilities: {attributes}.\n{text}"
            return text
        except Exception as e:
            logger.error(f"[{tool}] Unexpected error: {e}", exc_info=True)
            return f"Error: {e}"
