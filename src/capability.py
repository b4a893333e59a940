"""デバイス能力判定

報告されたコマンド属性からハードウェア世代を判定する純粋関数。
判定不能なときは例外を外に出さず Legacy に倒す。
"""

import logging
from enum import Enum
from typing import Any, Mapping

from errors import CapabilityIndeterminate

logger = logging.getLogger(__name__)

_VIBRATION_TAGS = {"vibrate", "vibration"}
_CONSTRICTION_TAGS = {"constrict", "constriction"}


class CapabilityProfile(str, Enum):
    """デバイスのアクチュエータ構成とコマンド方言。"""
    LEGACY = "Legacy"             # 初代 Sam Neo: 2 チャンネル一括 vibrate
    INDEXED_DUAL = "IndexedDual"  # Sam Neo 2 系: Vibrate + Constrict 個別制御

    @property
    def supports_independent(self) -> bool:
        return self is CapabilityProfile.INDEXED_DUAL


def _kind_of(descriptor: Any) -> str:
    if isinstance(descriptor, Mapping):
        kind = descriptor.get("kind", descriptor.get("ActuatorType"))
    else:
        kind = getattr(descriptor, "kind", None)
    if isinstance(kind, Enum):
        kind = kind.value
    if not isinstance(kind, str):
        raise CapabilityIndeterminate(f"descriptor without actuator kind: {descriptor!r}")
    return kind.lower()


def _count_kinds(attributes: Any) -> tuple[int, bool]:
    """(Vibrate の数, Constrict の有無) を返す。壊れた入力は CapabilityIndeterminate。"""
    if not isinstance(attributes, Mapping) or not attributes:
        raise CapabilityIndeterminate("no capability attributes reported")

    vibration_count = 0
    has_constriction = False
    for command, descriptors in attributes.items():
        # StopDeviceCmd: {} のような属性なしコマンド
        if isinstance(descriptors, Mapping):
            continue
        if not isinstance(descriptors, (list, tuple)):
            raise CapabilityIndeterminate(f"attribute list for {command!r} is not a list")
        for descriptor in descriptors:
            kind = _kind_of(descriptor)
            if kind in _VIBRATION_TAGS:
                vibration_count += 1
            elif kind in _CONSTRICTION_TAGS:
                has_constriction = True
    return vibration_count, has_constriction


def detect_profile(attributes: Any) -> CapabilityProfile:
    """
    コマンド属性からプロファイルを判定する。

    - Constrict があり Vibrate がちょうど 1 個 → IndexedDual
    - Vibrate が 2 個以上 → Legacy
    - それ以外（属性なし・壊れた属性を含む） → Legacy（安全側のデフォルト）

    Args:
        attributes: {コマンド種別: [descriptor]}。descriptor は kind 属性を持つ
            オブジェクトか、"kind" / "ActuatorType" キーを持つ dict

    Returns:
        CapabilityProfile（例外は送出しない）
    """
    try:
        vibration_count, has_constriction = _count_kinds(attributes)
    except CapabilityIndeterminate as e:
        logger.warning(f"[Capability] Indeterminate ({e}), defaulting to {CapabilityProfile.LEGACY.value}")
        return CapabilityProfile.LEGACY

    if has_constriction and vibration_count == 1:
        profile = CapabilityProfile.INDEXED_DUAL
    elif vibration_count >= 2:
        profile = CapabilityProfile.LEGACY
    else:
        logger.warning(
            f"[Capability] No usable signal (vibrate={vibration_count}, constrict={has_constriction}), "
            f"defaulting to {CapabilityProfile.LEGACY.value}"
        )
        profile = CapabilityProfile.LEGACY

    logger.info(f"[Capability] vibrate={vibration_count} constrict={has_constriction} -> {profile.value}")
    return profile
