"""
波形生成モジュール

外部状態に依存しない純粋関数のみを提供する。
(強度, 保持時間ms) の列を返すだけで、送信や待機は呼び出し側の責任。
"""

from dataclasses import dataclass
from enum import Enum

from errors import InvalidParameters


class Pattern(str, Enum):
    RAMP = "ramp"
    PULSE = "pulse"
    WAVE = "wave"
    HOLD = "hold"


@dataclass(frozen=True)
class Sample:
    """波形の 1 サンプル。"""
    intensity: float
    hold_ms: float


def validate(pattern: Pattern, target: float, total_ms: float, resolution: int | None = None) -> None:
    """
    生成前のパラメータ検査。ゼロ除算になる値はここで弾く。

    Args:
        pattern: 波形パターン
        target: 目標強度（0.0〜1.0）
        total_ms: 全体の長さ（ms）
        resolution: RAMP / WAVE はステップ数、PULSE はパルス間隔（ms）

    Raises:
        InvalidParameters: 範囲外の値
    """
    if not 0.0 <= target <= 1.0:
        raise InvalidParameters(f"intensity must be within [0, 1], got {target}")
    if total_ms < 0:
        raise InvalidParameters(f"duration must not be negative, got {total_ms}")
    if pattern in (Pattern.RAMP, Pattern.WAVE):
        if resolution is None or resolution <= 0:
            raise InvalidParameters(f"{pattern.value} needs steps > 0, got {resolution}")
    elif pattern is Pattern.PULSE:
        if resolution is None or resolution <= 0:
            raise InvalidParameters(f"pulse needs pulse interval > 0, got {resolution}")


def ramp(target: float, total_ms: float, steps: int) -> list[Sample]:
    """0 から target に向かう階段。最後のサンプルは target × (steps-1)/steps で止まる。"""
    hold = total_ms / steps
    return [Sample(target * (i / steps), hold) for i in range(steps)]


def pulse(target: float, total_ms: float, interval_ms: int) -> list[Sample]:
    """ON/OFF の繰り返し。2 × interval に満たない端数は切り捨てる。"""
    cycles = int(total_ms // (interval_ms * 2))
    samples = []
    for _ in range(cycles):
        samples.append(Sample(target, interval_ms))
        samples.append(Sample(0.0, interval_ms))
    return samples


def wave(target: float, total_ms: float, steps: int) -> list[Sample]:
    """三角波。0 → target（steps+1 点）→ 0（steps+1 点）。"""
    hold = total_ms / (steps * 2)
    rising = [Sample((i / steps) * target, hold) for i in range(steps + 1)]
    return rising + list(reversed(rising))


def hold(target: float, total_ms: float) -> list[Sample]:
    return [Sample(target, total_ms)]


def generate(pattern: Pattern, target: float, total_ms: float, resolution: int | None = None) -> list[Sample]:
    """パターン名から波形を生成する（validate を通してから生成）。"""
    pattern = Pattern(pattern)
    validate(pattern, target, total_ms, resolution)

    if pattern is Pattern.RAMP:
        return ramp(target, total_ms, resolution)
    if pattern is Pattern.PULSE:
        return pulse(target, total_ms, resolution)
    if pattern is Pattern.WAVE:
        return wave(target, total_ms, resolution)
    return hold(target, total_ms)


def total_duration(samples: list[Sample]) -> float:
    return sum(s.hold_ms for s in samples)
