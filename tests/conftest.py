"""
テスト共通のフェイク

FakePort     : ActuatorPort の記録用実装。成功・失敗したコマンドをすべて残す
FakeScheduler: 実際には待たずに待機時間だけ記録するスケジューラ
両者は同じ event log に書き込むので「コマンド → 待機 → コマンド」の順序を検証できる。
"""

import asyncio
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from devices.base import ActuatorDescriptor, ActuatorKind
from errors import DeviceCommandFailed
from scheduler import Scheduler

INDEXED_ATTRIBUTES = {
    "ScalarCmd": [
        ActuatorDescriptor("Vibrate", 0),
        ActuatorDescriptor("Constrict", 1),
    ],
}

LEGACY_ATTRIBUTES = {
    "ScalarCmd": [
        ActuatorDescriptor("Vibrate", 0),
        ActuatorDescriptor("Vibrate", 1),
    ],
}


class FakePort:
    """コマンドを記録するだけのポート。"""

    def __init__(self, log: list, attributes=None):
        self.log = log
        self.attributes = attributes if attributes is not None else INDEXED_ATTRIBUTES
        self.attempts: list[tuple[str, tuple, bool]] = []
        self.reject_kinds: set[ActuatorKind] = set()
        self.reject_linear = False
        self.fail_combined = False
        self.fail_halt = False
        self._fail_next = 0

    @property
    def name(self) -> str:
        return "fake"

    def fail_next(self, count: int = 1) -> None:
        """次の count 回のコマンドを失敗させる。"""
        self._fail_next = count

    # ActuatorPort ------------------------------------------------------

    def capability_attributes(self):
        return self.attributes

    async def combined_command(self, values):
        self._handle("combined", tuple(values), self.fail_combined)

    async def indexed_command(self, entries):
        rejected = any(e.kind in self.reject_kinds for e in entries)
        self._handle("indexed", tuple(entries), rejected)

    async def positional_command(self, points):
        self._handle("positional", tuple(points), self.reject_linear)

    async def halt(self):
        self._handle("halt", (), self.fail_halt)

    # helpers -----------------------------------------------------------

    def _handle(self, method: str, payload: tuple, rejected: bool) -> None:
        if self._fail_next > 0:
            self._fail_next -= 1
            rejected = True
        self.attempts.append((method, payload, not rejected))
        if rejected:
            raise DeviceCommandFailed(f"{method} rejected")
        self.log.append((method, payload))

    @property
    def commands(self) -> list[tuple[str, tuple]]:
        return [e for e in self.log if e[0] != "sleep"]


class FakeScheduler(Scheduler):
    """待たずに待機時間を記録する。並行経路が交互に進むよう 1 回だけ制御を譲る。"""

    def __init__(self, log: list):
        self.log = log

    async def sleep(self, ms, token=None):
        if token is not None:
            token.raise_if_cancelled()
        self.log.append(("sleep", ms))
        await asyncio.sleep(0)
        if token is not None:
            token.raise_if_cancelled()

    @property
    def sleeps(self) -> list[float]:
        return [e[1] for e in self.log if e[0] == "sleep"]


def scalar(entry_kind: ActuatorKind, index: int, value: float):
    """indexed コマンドの記録との比較用。"""
    from devices.base import ScalarEntry
    return ("indexed", (ScalarEntry(index, value, entry_kind),))


@pytest.fixture
def event_log() -> list:
    return []


@pytest.fixture
def port(event_log) -> FakePort:
    return FakePort(event_log)


@pytest.fixture
def legacy_port(event_log) -> FakePort:
    return FakePort(event_log, LEGACY_ATTRIBUTES)


@pytest.fixture
def scheduler(event_log) -> FakeScheduler:
    return FakeScheduler(event_log)
