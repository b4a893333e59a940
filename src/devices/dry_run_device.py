"""ドライランデバイス実装（実機なし）

コマンドをログに出して記録するだけ。Legacy / IndexedDual どちらの構成も装える。
指定した ActuatorType やリニアコマンドを拒否させて、フォールバックの確認にも使う。
"""

import logging
from typing import Sequence

from errors import DeviceCommandFailed
from .base import ActuatorDescriptor, ActuatorKind, LinearPoint, ScalarEntry, describe_attributes

logger = logging.getLogger(__name__)

_LAYOUTS: dict[str, dict[str, list[ActuatorDescriptor]]] = {
    # 初代 Sam Neo: バイブ 2 個（2 個目が吸引側）
    "legacy": {
        "ScalarCmd": [
            ActuatorDescriptor(ActuatorKind.VIBRATE.value, 0, step_count=20),
            ActuatorDescriptor(ActuatorKind.VIBRATE.value, 1, step_count=20),
        ],
    },
    # Sam Neo 2 系: バイブ + Constrict
    "indexed_dual": {
        "ScalarCmd": [
            ActuatorDescriptor(ActuatorKind.VIBRATE.value, 0, step_count=20),
            ActuatorDescriptor(ActuatorKind.CONSTRICT.value, 1, step_count=5),
        ],
    },
}


class DryRunDevice:
    """実機を使わないデバイス。ActuatorPort Protocol に準拠。"""

    def __init__(self, layout: str = "indexed_dual", name: str = "dry run",
                 reject_kinds: Sequence[str] = (), reject_linear: bool = False):
        if layout not in _LAYOUTS:
            raise ValueError(f"不明な dry_run layout: {layout!r}（'legacy' または 'indexed_dual'）")
        self._layout = layout
        self._name = name
        self._reject_kinds = {k.lower() for k in reject_kinds}
        self._reject_linear = reject_linear
        self.commands: list[tuple[str, object]] = []

    @property
    def name(self) -> str:
        return self._name

    async def connect(self) -> bool:
        logger.info(f"DryRun device ready: {self._name} ({self._layout}) "
                    f"attributes={describe_attributes(self.capability_attributes())}")
        return True

    async def disconnect(self) -> None:
        logger.info("DryRun device closed")

    # ------------------------------------------------------------------ #
    # ActuatorPort インターフェース                                        #
    # ------------------------------------------------------------------ #

    def capability_attributes(self) -> dict[str, list[ActuatorDescriptor]]:
        return {command: list(descriptors) for command, descriptors in _LAYOUTS[self._layout].items()}

    async def combined_command(self, values: Sequence[float]) -> None:
        self._record("combined", tuple(values))

    async def indexed_command(self, entries: Sequence[ScalarEntry]) -> None:
        for entry in entries:
            if ActuatorKind(entry.kind).value.lower() in self._reject_kinds:
                raise DeviceCommandFailed(f"ScalarCmd: actuator type {ActuatorKind(entry.kind).value} rejected")
        self._record("indexed", tuple(entries))

    async def positional_command(self, points: Sequence[LinearPoint]) -> None:
        if self._reject_linear:
            raise DeviceCommandFailed("LinearCmd: not supported by device")
        self._record("positional", tuple(points))

    async def halt(self) -> None:
        self._record("halt", ())

    def _record(self, kind: str, payload: object) -> None:
        self.commands.append((kind, payload))
        logger.info(f"DryRun {kind}: {payload}")
