"""Extended-Hold シーケンサ（Extended O）

両チャンネルを一気に最低レベルへ落とし、一定時間保持してから元の強度へ戻す。

  1. Drop    : minimum_level へ即時変更（ランプなし）
  2. Hold    : hold_ms 待機（レベル指定型プロトコルなので再送しない）
  3. Restore : restore_ms == 0 なら即時、それ以外は restore_steps 段で線形補間

Drop / Hold 中に失敗しても、最低レベルのまま放置しないよう
ベストエフォートで元の強度に戻してから例外を送出する。
"""

import asyncio
import logging
from dataclasses import dataclass

from dispatcher import FallbackDispatcher
from errors import HapticsError, InvalidParameters
from scheduler import CancelToken, Scheduler

logger = logging.getLogger(__name__)

DEFAULT_RESTORE_STEPS = 10


@dataclass(frozen=True)
class HoldPlan:
    current_vibration: float
    current_vacuum: float
    hold_ms: int = 10000
    minimum_level: float = 0.1
    restore_ms: int = 500


@dataclass
class HoldReport:
    minimum_level: float
    hold_ms: int
    restored_vibration: float
    restored_vacuum: float
    restore_steps: int = 0
    vacuum_encoding: str | None = None


class ExtendedHoldSequencer:
    """Drop → Hold → Restore の 3 フェーズを実行する。"""

    def __init__(self, dispatcher: FallbackDispatcher, scheduler: Scheduler | None = None,
                 restore_steps: int = DEFAULT_RESTORE_STEPS):
        if restore_steps <= 0:
            raise InvalidParameters(f"restore_steps must be > 0, got {restore_steps}")
        self._dispatcher = dispatcher
        self._scheduler = scheduler or Scheduler()
        self._restore_steps = restore_steps

    async def run(self, plan: HoldPlan) -> HoldReport:
        """
        Args:
            plan: 元の強度・保持時間・最低レベル・復帰時間

        Returns:
            HoldReport（正常終了時はデバイスは元の強度で動作中）

        Raises:
            HapticsError: いずれかのフェーズでデバイスコマンドが失敗した
        """
        _check_plan(plan)
        profile = self._dispatcher.profile.value
        report = HoldReport(plan.minimum_level, plan.hold_ms, plan.current_vibration, plan.current_vacuum)
        token = CancelToken()

        logger.info(
            f"[ExtendedO] Starting: currentVibration={plan.current_vibration}, currentVacuum={plan.current_vacuum}, "
            f"holdDuration={plan.hold_ms}ms, minimumLevel={plan.minimum_level}, device={profile}"
        )

        try:
            # Phase 1: Drop
            await self._dispatcher.set_levels(plan.minimum_level, plan.minimum_level)
            logger.info(f"[ExtendedO] Reduced to minimum: {plan.minimum_level}")

            # Phase 2: Hold
            logger.info(f"[ExtendedO] Holding at minimum level for {plan.hold_ms}ms")
            await self._scheduler.sleep(plan.hold_ms, token)

            # Phase 3: Restore
            await self._restore(plan, report, token)
        except asyncio.CancelledError:
            # 外側から放棄された：以降のステップは出さずに止める
            token.cancel("invocation abandoned")
            logger.warning("[ExtendedO] Cancelled, stopping all channels")
            await self._dispatcher.stop_quietly()
            raise
        except HapticsError as e:
            logger.error(f"[ExtendedO] Failed ({e}), attempting best-effort restore")
            await self._restore_quietly(plan)
            raise

        logger.info(f"[ExtendedO] Completed - device: {profile}")
        return report

    async def _restore(self, plan: HoldPlan, report: HoldReport, token: CancelToken) -> None:
        if plan.restore_ms == 0:
            report.vacuum_encoding = await self._dispatcher.set_levels(plan.current_vibration, plan.current_vacuum)
            logger.info("[ExtendedO] Instantly restored to original levels")
            return

        steps = self._restore_steps
        step_delay = plan.restore_ms / steps
        vibration_step = (plan.current_vibration - plan.minimum_level) / steps
        vacuum_step = (plan.current_vacuum - plan.minimum_level) / steps

        for i in range(1, steps + 1):
            token.raise_if_cancelled()
            if i == steps:
                # 最終段は元の値そのもの（補間の丸め誤差を残さない）
                vibration, vacuum = plan.current_vibration, plan.current_vacuum
            else:
                vibration = plan.minimum_level + vibration_step * i
                vacuum = plan.minimum_level + vacuum_step * i
            report.vacuum_encoding = await self._dispatcher.set_levels(vibration, vacuum)
            report.restore_steps += 1
            await self._scheduler.sleep(step_delay, token)

        logger.info(f"[ExtendedO] Gradually restored to original levels over {plan.restore_ms}ms")

    async def _restore_quietly(self, plan: HoldPlan) -> None:
        try:
            await self._dispatcher.set_levels(plan.current_vibration, plan.current_vacuum)
            logger.info("[ExtendedO] Best-effort restore succeeded")
        except Exception as e:
            logger.error(f"[ExtendedO] Best-effort restore failed: [{type(e).__name__}] {e}")


def _check_plan(plan: HoldPlan) -> None:
    for name in ("current_vibration", "current_vacuum", "minimum_level"):
        value = getattr(plan, name)
        if not 0.0 <= value <= 1.0:
            raise InvalidParameters(f"{name} must be within [0, 1], got {value}")
    if plan.hold_ms < 0 or plan.restore_ms < 0:
        raise InvalidParameters("durations must not be negative")
