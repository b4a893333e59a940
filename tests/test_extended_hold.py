"""
extended_hold.py のテスト
"""

import asyncio
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from capability import CapabilityProfile
from conftest import scalar
from devices.base import ActuatorKind
from dispatcher import FallbackDispatcher
from errors import DeviceCommandFailed, InvalidParameters
from extended_hold import ExtendedHoldSequencer, HoldPlan
from scheduler import Scheduler


def levels(port):
    """indexed コマンドの記録を (vibration, vacuum) の組に直す。"""
    values = [c[1][0].value for c in port.commands if c[0] == "indexed"]
    return list(zip(values[0::2], values[1::2]))


@pytest.fixture
def sequencer(port, scheduler):
    return ExtendedHoldSequencer(FallbackDispatcher(port, CapabilityProfile.INDEXED_DUAL), scheduler)


class TestPhases:

    @pytest.mark.asyncio
    async def test_instant_restore(self, sequencer, event_log):
        report = await sequencer.run(HoldPlan(
            current_vibration=0.8, current_vacuum=0.6, hold_ms=10000, minimum_level=0.1, restore_ms=0,
        ))
        assert event_log == [
            scalar(ActuatorKind.VIBRATE, 0, 0.1),
            scalar(ActuatorKind.CONSTRICT, 1, 0.1),
            ("sleep", 10000),
            scalar(ActuatorKind.VIBRATE, 0, 0.8),
            scalar(ActuatorKind.CONSTRICT, 1, 0.6),
        ]
        assert report.restore_steps == 0
        assert report.vacuum_encoding == "Constrict"

    @pytest.mark.asyncio
    async def test_gradual_restore(self, sequencer, port, scheduler):
        """restore_ms=500: 10 段、各 50ms。最終段は元の値ちょうど"""
        report = await sequencer.run(HoldPlan(
            current_vibration=0.8, current_vacuum=0.6, hold_ms=10000, minimum_level=0.1, restore_ms=500,
        ))
        pairs = levels(port)
        assert pairs[0] == (0.1, 0.1)
        restore = pairs[1:]
        assert len(restore) == 10
        assert restore[0] == pytest.approx((0.17, 0.15))
        assert restore[-1] == (0.8, 0.6)
        assert [v for v, _ in restore] == sorted(v for v, _ in restore)
        assert scheduler.sleeps == [10000] + [50.0] * 10
        assert report.restore_steps == 10

    @pytest.mark.asyncio
    async def test_drop_is_exactly_two_commands(self, sequencer, event_log):
        await sequencer.run(HoldPlan(current_vibration=0.5, current_vacuum=0.5, restore_ms=0))
        assert event_log.index(("sleep", 10000)) == 2

    @pytest.mark.asyncio
    async def test_no_stop_after_normal_completion(self, sequencer, port):
        """正常終了時は元の強度のまま（停止しない）"""
        await sequencer.run(HoldPlan(current_vibration=0.5, current_vacuum=0.4, restore_ms=0))
        assert levels(port)[-1] == (0.5, 0.4)

    @pytest.mark.asyncio
    async def test_legacy_uses_one_combined_command_per_step(self, legacy_port, scheduler):
        sequencer = ExtendedHoldSequencer(FallbackDispatcher(legacy_port, CapabilityProfile.LEGACY), scheduler)
        report = await sequencer.run(HoldPlan(
            current_vibration=0.6, current_vacuum=0.3, hold_ms=2000, minimum_level=0.0, restore_ms=0,
        ))
        assert legacy_port.commands == [("combined", (0.0, 0.0)), ("combined", (0.6, 0.3))]
        assert report.vacuum_encoding == "OriginalCombo"


class TestFailures:

    @pytest.mark.asyncio
    async def test_drop_failure_restores_original_levels(self, sequencer, port, scheduler):
        port.fail_next(1)
        with pytest.raises(DeviceCommandFailed):
            await sequencer.run(HoldPlan(current_vibration=0.7, current_vacuum=0.5, restore_ms=0))
        assert levels(port) == [(0.7, 0.5)]
        assert scheduler.sleeps == []

    @pytest.mark.asyncio
    async def test_cancel_during_hold_stops_all(self, port):
        sequencer = ExtendedHoldSequencer(FallbackDispatcher(port, CapabilityProfile.INDEXED_DUAL), Scheduler())
        task = asyncio.create_task(sequencer.run(HoldPlan(current_vibration=0.8, current_vacuum=0.8)))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert levels(port) == [(0.1, 0.1), (0.0, 0.0)]

    @pytest.mark.parametrize("plan", [
        HoldPlan(current_vibration=1.2, current_vacuum=0.5),
        HoldPlan(current_vibration=0.5, current_vacuum=-0.1),
        HoldPlan(current_vibration=0.5, current_vacuum=0.5, hold_ms=-1),
        HoldPlan(current_vibration=0.5, current_vacuum=0.5, restore_ms=-1),
    ])
    @pytest.mark.asyncio
    async def test_invalid_plan_issues_no_io(self, sequencer, port, plan):
        with pytest.raises(InvalidParameters):
            await sequencer.run(plan)
        assert port.attempts == []

    def test_restore_steps_must_be_positive(self, port):
        with pytest.raises(InvalidParameters):
            ExtendedHoldSequencer(FallbackDispatcher(port, CapabilityProfile.INDEXED_DUAL), restore_steps=0)
