"""協調エンジン

vibration / vacuum の 2 チャンネルを同期モードに従って組み合わせ、
ステップごとにディスパッチャへ流す。

どの終了経路（正常終了・例外・キャンセル）でも最後に stop_all を呼ぶ。
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

import waveform
from capability import CapabilityProfile
from dispatcher import FallbackDispatcher
from errors import InvalidParameters
from scheduler import CancelToken, Scheduler
from waveform import Pattern, Sample

logger = logging.getLogger(__name__)

INDEPENDENT_FALLBACK_NOTICE = (
    "Notice: independent mode is not supported on Legacy devices, "
    "ran synchronized mode instead"
)


class SyncMode(str, Enum):
    SYNCHRONIZED = "synchronized"
    ALTERNATING = "alternating"
    INDEPENDENT = "independent"


class VacuumPattern(str, Enum):
    CONSTANT = "constant"
    PULSE = "pulse"
    WAVE = "wave"


@dataclass(frozen=True)
class PatternTiming:
    """パターン生成の固定値。"""
    combo_pulse_interval_ms: int = 500
    wave_steps: int = 20


@dataclass(frozen=True)
class ComboPlan:
    duration_ms: int
    steps: int = 20
    vibration_power: float = 0.5
    vacuum_intensity: float = 0.5
    sync_mode: SyncMode = SyncMode.SYNCHRONIZED
    vacuum_pattern: VacuumPattern = VacuumPattern.CONSTANT


@dataclass
class SequenceReport:
    """1 回のシーケンス実行結果。"""
    profile: CapabilityProfile
    requested_mode: SyncMode | None = None
    effective_mode: SyncMode | None = None
    vacuum_encoding: str | None = None
    steps_issued: int = 0
    notices: list[str] = field(default_factory=list)


class CoordinationEngine:
    """波形をディスパッチャ経由でデバイスに流す。

    デバイスとプロファイルはディスパッチャが保持する（グローバル状態は持たない）。
    """

    def __init__(self, dispatcher: FallbackDispatcher, scheduler: Scheduler | None = None,
                 timing: PatternTiming | None = None):
        self._dispatcher = dispatcher
        self._scheduler = scheduler or Scheduler()
        self._timing = timing or PatternTiming()

    @property
    def profile(self) -> CapabilityProfile:
        return self._dispatcher.profile

    @property
    def port(self):
        return self._dispatcher.port

    def resolve_mode(self, requested: SyncMode) -> tuple[SyncMode, str | None]:
        """要求モードを実効モードに解決する。Legacy の independent は synchronized に降格。"""
        requested = SyncMode(requested)
        if requested is SyncMode.INDEPENDENT and not self.profile.supports_independent:
            logger.warning(f"[Combo] {self.profile.value} device doesn't support independent mode, using synchronized")
            return SyncMode.SYNCHRONIZED, INDEPENDENT_FALLBACK_NOTICE
        return requested, None

    # ------------------------------------------------------------------ #
    # Combo                                                                #
    # ------------------------------------------------------------------ #

    async def run_combo(self, plan: ComboPlan) -> SequenceReport:
        """vibration と vacuum を同時に駆動する。"""
        mode, notice = self.resolve_mode(plan.sync_mode)
        report = SequenceReport(self.profile, requested_mode=SyncMode(plan.sync_mode), effective_mode=mode)
        if notice:
            report.notices.append(notice)

        # デバイス I/O の前に波形を作り切る（不正パラメータはここで弾かれる）
        _check_intensity("vibration_power", plan.vibration_power)
        _check_intensity("vacuum_intensity", plan.vacuum_intensity)
        fractions = waveform.generate(Pattern.RAMP, 1.0, plan.duration_ms, plan.steps)
        vacuum_samples = None
        if mode is SyncMode.INDEPENDENT:
            vacuum_samples = self._vacuum_samples(
                VacuumPattern(plan.vacuum_pattern), plan.vacuum_intensity,
                plan.duration_ms, self._timing.combo_pulse_interval_ms,
            )

        logger.info(
            f"[Combo] Starting: duration={plan.duration_ms}ms, steps={plan.steps}, "
            f"vibrationPower={plan.vibration_power}, vacuumIntensity={plan.vacuum_intensity}, "
            f"syncMode={mode.value}, device={self.profile.value}"
        )

        async def sequence(token: CancelToken) -> None:
            if mode is SyncMode.INDEPENDENT:
                await self._run_independent(plan, fractions, vacuum_samples, report, token)
            else:
                await self._run_lockstep(plan, mode, fractions, report, token)

        await self._with_release(sequence)
        logger.info(f"[Combo] Completed: steps={report.steps_issued}, mode={mode.value}, encoding={report.vacuum_encoding}")
        return report

    async def _run_lockstep(self, plan: ComboPlan, mode: SyncMode, fractions: list[Sample],
                            report: SequenceReport, token: CancelToken) -> None:
        """synchronized / alternating: 共通のステップ番号から両チャンネルの値を出す。"""
        for sample in fractions:
            fraction = sample.intensity
            vibration = fraction * plan.vibration_power
            if mode is SyncMode.ALTERNATING:
                vacuum = (1 - fraction) * plan.vacuum_intensity
            else:
                vacuum = fraction * plan.vacuum_intensity

            token.raise_if_cancelled()
            report.vacuum_encoding = await self._dispatcher.set_levels(vibration, vacuum)
            report.steps_issued += 1
            await self._scheduler.sleep(sample.hold_ms, token)

    async def _run_independent(self, plan: ComboPlan, fractions: list[Sample], vacuum_samples: list[Sample],
                               report: SequenceReport, token: CancelToken) -> None:
        """independent: 2 本の経路をそれぞれの周期で並行に走らせ、両方の完了を待つ。"""
        vibration_samples = [Sample(s.intensity * plan.vibration_power, s.hold_ms) for s in fractions]

        (vibration_steps, _), _ = await self._join(
            token,
            self._drive_channel(vibration_samples, self._dispatcher.set_vibration, token),
            self._drive_vacuum(vacuum_samples, report, token),
        )
        report.steps_issued += vibration_steps

    async def _join(self, token: CancelToken, *coros: Awaitable) -> list:
        """全経路の完了を待つ。1 本でも失敗したら残りもキャンセルしてから送出する。"""
        tasks = [asyncio.ensure_future(c) for c in coros]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            token.cancel("sibling path failed")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # ------------------------------------------------------------------ #
    # 単チャンネル                                                         #
    # ------------------------------------------------------------------ #

    async def run_vacuum(self, intensity: float, duration_ms: int,
                         pattern: VacuumPattern = VacuumPattern.CONSTANT,
                         pulse_interval_ms: int = 500) -> SequenceReport:
        """vacuum チャンネルだけをパターン駆動する。"""
        samples = self._vacuum_samples(VacuumPattern(pattern), intensity, duration_ms, pulse_interval_ms)
        report = SequenceReport(self.profile)
        logger.info(
            f"[Vacuum] Starting: intensity={intensity}, duration={duration_ms}ms, "
            f"pattern={VacuumPattern(pattern).value}, device={self.profile.value}"
        )

        async def sequence(token: CancelToken) -> None:
            report.steps_issued = await self._drive_vacuum(samples, report, token)

        await self._with_release(sequence)
        logger.info(f"[Vacuum] Completed: approach={report.vacuum_encoding}, steps={report.steps_issued}")
        return report

    async def run_piston(self, duration_ms: int, steps: int = 20, vibration_power: float = 0.5) -> SequenceReport:
        """vibration のランプ（ピストン動作）。

        Legacy は一括コマンドで ch1=vibration_power 固定、ch2 にランプを流す。
        """
        _check_intensity("vibration_power", vibration_power)
        fractions = waveform.generate(Pattern.RAMP, 1.0, duration_ms, steps)
        report = SequenceReport(self.profile)
        logger.info(f"[Piston] Starting: duration={duration_ms}ms, steps={steps}, "
                    f"vibrationPower={vibration_power}, device={self.profile.value}")

        async def sequence(token: CancelToken) -> None:
            for sample in fractions:
                token.raise_if_cancelled()
                if self.profile is CapabilityProfile.LEGACY:
                    await self._dispatcher.set_levels(vibration_power, sample.intensity)
                else:
                    await self._dispatcher.set_vibration(sample.intensity * vibration_power)
                report.steps_issued += 1
                await self._scheduler.sleep(sample.hold_ms, token)

        await self._with_release(sequence)
        logger.info(f"[Piston] Completed: steps={report.steps_issued}")
        return report

    # ------------------------------------------------------------------ #
    # 内部                                                                 #
    # ------------------------------------------------------------------ #

    def _vacuum_samples(self, pattern: VacuumPattern, intensity: float,
                        duration_ms: int, pulse_interval_ms: int) -> list[Sample]:
        if pattern is VacuumPattern.PULSE:
            return waveform.generate(Pattern.PULSE, intensity, duration_ms, pulse_interval_ms)
        if pattern is VacuumPattern.WAVE:
            return waveform.generate(Pattern.WAVE, intensity, duration_ms, self._timing.wave_steps)
        return waveform.generate(Pattern.HOLD, intensity, duration_ms)

    async def _drive_channel(self, samples: list[Sample], setter: Callable[[float], Awaitable[str]],
                             token: CancelToken) -> tuple[int, str | None]:
        label = None
        for sample in samples:
            token.raise_if_cancelled()
            label = await setter(sample.intensity)
            await self._scheduler.sleep(sample.hold_ms, token)
        return len(samples), label

    async def _drive_vacuum(self, samples: list[Sample], report: SequenceReport, token: CancelToken) -> int:
        for sample in samples:
            token.raise_if_cancelled()
            label = await self._dispatcher.set_vacuum(sample.intensity)
            # OFF 区間ではなく実際に吸引をかけたときのエンコーディングを報告する
            if sample.intensity > 0 or report.vacuum_encoding is None:
                report.vacuum_encoding = label
            await self._scheduler.sleep(sample.hold_ms, token)
        return len(samples)

    async def _with_release(self, sequence: Callable[[CancelToken], Awaitable[None]]) -> None:
        """シーケンスを実行し、どの経路でも必ず stop_all する。"""
        token = CancelToken()
        try:
            await sequence(token)
        except BaseException as e:
            token.cancel(f"{type(e).__name__}")
            logger.warning(f"[Engine] Sequence aborted ([{type(e).__name__}] {e}), stopping all channels")
            await self._dispatcher.stop_quietly()
            raise
        await self._dispatcher.stop_all()


def _check_intensity(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise InvalidParameters(f"{name} must be within [0, 1], got {value}")
