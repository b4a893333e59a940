"""デバイス抽象化 Protocol"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence, runtime_checkable


class ActuatorKind(str, Enum):
    """Buttplug の ActuatorType。値はプロトコル上の文字列そのもの。"""
    VIBRATE = "Vibrate"
    CONSTRICT = "Constrict"
    INFLATE = "Inflate"
    OSCILLATE = "Oscillate"
    POSITION = "Position"


@dataclass(frozen=True)
class ActuatorDescriptor:
    """デバイスが報告するアクチュエータ 1 個分の属性。"""
    kind: str
    index: int
    step_count: int | None = None
    feature: str = ""


@dataclass(frozen=True)
class ScalarEntry:
    index: int
    value: float
    kind: ActuatorKind


@dataclass(frozen=True)
class LinearPoint:
    value: float
    duration_ms: int


@runtime_checkable
class ActuatorPort(Protocol):
    """エンジンが叩くコマンド面。

    Buttplug / ドライランなど接続方式の違いを隠蔽する。
    失敗時はすべて DeviceCommandFailed を送出する。
    """

    @property
    def name(self) -> str:
        ...

    async def combined_command(self, values: Sequence[float]) -> None:
        """旧世代の 2 チャンネル一括コマンド。"""
        ...

    async def indexed_command(self, entries: Sequence[ScalarEntry]) -> None:
        """アクチュエータごとのインデックス付きコマンド。"""
        ...

    async def positional_command(self, points: Sequence[LinearPoint]) -> None:
        """リニア（位置）コマンド。"""
        ...

    async def halt(self) -> None:
        """全アクチュエータを即停止する。"""
        ...

    def capability_attributes(self) -> dict[str, list[ActuatorDescriptor]]:
        """コマンド種別 → アクチュエータ属性リスト。"""
        ...


def parse_device_messages(messages: Any) -> dict[str, list[ActuatorDescriptor]]:
    """Buttplug の DeviceMessages を {コマンド種別: [ActuatorDescriptor]} に変換する。

    StopDeviceCmd のように属性リストを持たない項目は捨てる。
    壊れた項目もスキップするだけで例外は出さない（判定側が Legacy に倒す）。

    Args:
        messages: DeviceAdded / DeviceList に含まれる DeviceMessages

    Returns:
        コマンド種別ごとの ActuatorDescriptor リスト
    """
    result: dict[str, list[ActuatorDescriptor]] = {}
    if not isinstance(messages, dict):
        return result

    for command, attrs in messages.items():
        if not isinstance(attrs, list):
            continue
        descriptors = []
        for index, attr in enumerate(attrs):
            if not isinstance(attr, dict):
                continue
            # LinearCmd / RotateCmd には ActuatorType が無いので Position 扱い
            kind = attr.get("ActuatorType")
            if kind is None and command == "LinearCmd":
                kind = ActuatorKind.POSITION.value
            if not isinstance(kind, str):
                continue
            descriptors.append(ActuatorDescriptor(
                kind=kind,
                index=index,
                step_count=attr.get("StepCount"),
                feature=attr.get("FeatureDescriptor", "") or "",
            ))
        result[command] = descriptors
    return result


def describe_attributes(attributes: dict[str, list[ActuatorDescriptor]]) -> str:
    """ログ・エラーメッセージ用の短い表現。"""
    if not attributes:
        return "{}"
    parts = []
    for command, descriptors in attributes.items():
        kinds = ", ".join(f"{d.kind}#{d.index}" for d in descriptors)
        parts.append(f"{command}: [{kinds}]")
    return "{" + "; ".join(parts) + "}"
