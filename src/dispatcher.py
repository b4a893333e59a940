"""フォールバックディスパッチャ

論理チャンネル（vibration / vacuum）の強度を、プロファイルに応じた
物理コマンドに変換して送る。

- Legacy: 2 チャンネル一括コマンド。もう一方のチャンネルは最後に送った値を維持
- IndexedDual: vibration は Vibrate#0 固定、vacuum はエンコーディングチェーンを
  先頭から順に試し、最初に通ったものを使う（呼び出しをまたいだキャッシュはしない）
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from capability import CapabilityProfile
from devices.base import ActuatorKind, ActuatorPort, LinearPoint, ScalarEntry
from errors import (
    AllEncodingsFailed, DeviceCommandFailed, EncodingAttemptFailed, HapticsError,
)

logger = logging.getLogger(__name__)

LEGACY_VACUUM_LABEL = "OriginalVibrate"
LEGACY_COMBINED_LABEL = "OriginalCombo"
INDEXED_VIBRATION_LABEL = "Vibrate-Index0"

# 浮動小数の誤差で [0, 1] をわずかに外れる値は丸める
_CLAMP_TOLERANCE = 1e-6


class EncodingCommand(Enum):
    SCALAR = "scalar"
    LINEAR = "linear"


def _identity(value: float) -> float:
    return value


@dataclass(frozen=True)
class VacuumEncoding:
    """バキュームを表現する物理コマンド 1 通り。"""
    label: str
    command: EncodingCommand
    kind: ActuatorKind | None = None
    index: int = 0
    duration_ms: int = 100
    transform: Callable[[float], float] = _identity


def build_vacuum_chain(linear_duration_ms: int = 100) -> tuple[VacuumEncoding, ...]:
    """バキュームのエンコーディングチェーン（優先順。実行時に並べ替えてはいけない）。"""
    return (
        VacuumEncoding("Constrict", EncodingCommand.SCALAR, ActuatorKind.CONSTRICT, index=1),
        VacuumEncoding("Linear", EncodingCommand.LINEAR, duration_ms=linear_duration_ms),
        VacuumEncoding("Inflate-Index1", EncodingCommand.SCALAR, ActuatorKind.INFLATE, index=1),
        VacuumEncoding("Inflate-Index0", EncodingCommand.SCALAR, ActuatorKind.INFLATE, index=0),
    )


VACUUM_ENCODING_CHAIN = build_vacuum_chain()


@dataclass
class ChannelLevels:
    """各チャンネルの最後に送った強度。"""
    vibration: float = 0.0
    vacuum: float = 0.0


@dataclass
class DispatchResult:
    label: str
    attempts: list[EncodingAttemptFailed] = field(default_factory=list)


def clamp_intensity(value: float) -> float:
    if value != value:  # NaN
        raise ValueError("intensity is NaN")
    if value < 0.0 or value > 1.0:
        if value < -_CLAMP_TOLERANCE or value > 1.0 + _CLAMP_TOLERANCE:
            logger.warning(f"[Dispatcher] Intensity clamped from {value} to [0, 1]")
        return max(0.0, min(1.0, value))
    return value


class FallbackDispatcher:
    """論理チャンネル → 物理エンコーディングの変換と送信を担う。

    デバイスへの排他アクセスは呼び出し側（ツール実行の直列化）が保証する前提。
    """

    def __init__(self, port: ActuatorPort, profile: CapabilityProfile,
                 chain: tuple[VacuumEncoding, ...] = VACUUM_ENCODING_CHAIN,
                 zero_on_failed_encoding: bool = False):
        """
        Args:
            port: コマンド送信先
            profile: デバイスの CapabilityProfile（以後変更しない）
            chain: バキュームのエンコーディングチェーン（優先順）
            zero_on_failed_encoding: 失敗したエンコーディングに 0 を送ってから次を試す
                （ポートが失敗時の原子性を保証しない場合に使う）
        """
        self._port = port
        self._profile = profile
        self._chain = tuple(chain)
        self._zero_on_failed_encoding = zero_on_failed_encoding
        self.levels = ChannelLevels()

    @property
    def profile(self) -> CapabilityProfile:
        return self._profile

    @property
    def port(self) -> ActuatorPort:
        return self._port

    # ------------------------------------------------------------------ #
    # 公開 API                                                             #
    # ------------------------------------------------------------------ #

    async def set_vibration(self, intensity: float) -> str:
        """vibration チャンネルを設定する。フォールバックなし、失敗は致命的。"""
        intensity = clamp_intensity(intensity)
        if self._profile is CapabilityProfile.LEGACY:
            await self._send_combined(intensity, self.levels.vacuum)
            label = LEGACY_COMBINED_LABEL
        else:
            await self._port.indexed_command([ScalarEntry(0, intensity, ActuatorKind.VIBRATE)])
            label = INDEXED_VIBRATION_LABEL
        self.levels.vibration = intensity
        logger.debug(f"[Dispatcher] vibration={intensity:.3f} via {label}")
        return label

    async def set_vacuum(self, intensity: float) -> str:
        """vacuum チャンネルを設定し、使ったエンコーディング名を返す。

        Raises:
            DeviceCommandFailed: Legacy で一括コマンドが失敗
            AllEncodingsFailed: IndexedDual でチェーン全滅
        """
        intensity = clamp_intensity(intensity)
        if self._profile is CapabilityProfile.LEGACY:
            await self._send_combined(self.levels.vibration, intensity)
            label = LEGACY_VACUUM_LABEL
        else:
            label = (await self._dispatch_vacuum_chain(intensity)).label
        self.levels.vacuum = intensity
        logger.debug(f"[Dispatcher] vacuum={intensity:.3f} via {label}")
        return label

    async def set_levels(self, vibration: float, vacuum: float) -> str:
        """両チャンネルをまとめて設定する。Legacy は一括コマンド 1 回で済ませる。

        Returns:
            vacuum に使ったエンコーディング名
        """
        if self._profile is CapabilityProfile.LEGACY:
            vibration = clamp_intensity(vibration)
            vacuum = clamp_intensity(vacuum)
            await self._send_combined(vibration, vacuum)
            self.levels.vibration = vibration
            self.levels.vacuum = vacuum
            logger.debug(f"[Dispatcher] combined vibration={vibration:.3f} vacuum={vacuum:.3f}")
            return LEGACY_COMBINED_LABEL

        await self.set_vibration(vibration)
        return await self.set_vacuum(vacuum)

    async def stop_all(self) -> None:
        """両チャンネルを 0 にする。チャンネル単位で失敗したら halt で止める。"""
        try:
            await self.set_levels(0.0, 0.0)
        except HapticsError as e:
            logger.warning(f"[Dispatcher] Zeroing channels failed ({e}), sending halt")
            await self._port.halt()
            self.levels = ChannelLevels()
        logger.debug("[Dispatcher] All channels stopped")

    async def stop_quietly(self) -> None:
        """stop_all のベストエフォート版。失敗はログに残すだけで送出しない。"""
        try:
            await self.stop_all()
        except Exception as e:
            logger.error(f"[Dispatcher] stop_all failed: [{type(e).__name__}] {e}")

    # ------------------------------------------------------------------ #
    # 内部                                                                 #
    # ------------------------------------------------------------------ #

    async def _send_combined(self, vibration: float, vacuum: float) -> None:
        try:
            await self._port.combined_command([vibration, vacuum])
        except DeviceCommandFailed as e:
            logger.error(f"[Dispatcher] Combined command failed: {e}")
            raise

    async def _dispatch_vacuum_chain(self, intensity: float) -> DispatchResult:
        attempts: list[EncodingAttemptFailed] = []
        for position, encoding in enumerate(self._chain, start=1):
            try:
                logger.debug(f"[Dispatcher] Trying vacuum encoding {position}/{len(self._chain)}: {encoding.label}")
                await self._send_encoding(encoding, intensity)
            except DeviceCommandFailed as e:
                failure = EncodingAttemptFailed(encoding.label, str(e))
                attempts.append(failure)
                logger.warning(f"[Dispatcher] Vacuum encoding failed: {failure}")
                if self._zero_on_failed_encoding:
                    await self._zero_encoding(encoding)
                continue
            if attempts:
                logger.info(f"[Dispatcher] Vacuum success with encoding: {encoding.label}")
            return DispatchResult(encoding.label, attempts)

        logger.error(f"[Dispatcher] All {len(self._chain)} vacuum encodings failed")
        raise AllEncodingsFailed(attempts)

    async def _send_encoding(self, encoding: VacuumEncoding, intensity: float) -> None:
        value = clamp_intensity(encoding.transform(intensity))
        if encoding.command is EncodingCommand.LINEAR:
            await self._port.positional_command([LinearPoint(value, encoding.duration_ms)])
        else:
            await self._port.indexed_command([ScalarEntry(encoding.index, value, encoding.kind)])

    async def _zero_encoding(self, encoding: VacuumEncoding) -> None:
        try:
            await self._send_encoding(encoding, 0.0)
        except DeviceCommandFailed as e:
            logger.debug(f"[Dispatcher] Zeroing {encoding.label} after failure also failed: {e}")
