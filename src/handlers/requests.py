"""ツール呼び出しのリクエスト定義

範囲チェック付きの pydantic モデル。ここを通らない値はデバイスに届かない。
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from coordination import SyncMode, VacuumPattern
from errors import InvalidParameters


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ComboRequest(_Request):
    duration: int = Field(ge=1000, le=100000, description="Total duration in milliseconds for the combined stimulation")
    steps: int = Field(default=20, ge=20, le=1000, description="Number of steps for the stepping pattern")
    vibration_power: float = Field(default=0.5, ge=0.0, le=1.0, description="Base vibration intensity (0.0 to 1.0)")
    vacuum_intensity: float = Field(default=0.5, ge=0.0, le=1.0, description="Vacuum/suction intensity (0.0 to 1.0)")
    sync_mode: SyncMode = Field(
        default=SyncMode.SYNCHRONIZED,
        description="synchronized (together), alternating (opposite), independent (separate patterns)",
    )
    vacuum_pattern: VacuumPattern = Field(
        default=VacuumPattern.CONSTANT, description="Vacuum pattern when in independent mode",
    )


class VacuumRequest(_Request):
    intensity: float = Field(default=0.5, ge=0.0, le=1.0, description="Vacuum intensity level (0.0 to 1.0)")
    duration: int = Field(default=1000, ge=100, le=30000, description="Duration in milliseconds for the vacuum effect")
    pattern: VacuumPattern = Field(
        default=VacuumPattern.CONSTANT,
        description="constant (steady), pulse (on/off), wave (gradual changes)",
    )
    pulse_interval: int = Field(default=500, ge=100, le=2000, description="Pulse interval in milliseconds")


class PistonRequest(_Request):
    duration: int = Field(ge=1000, le=100000, description="Total duration in milliseconds")
    steps: int = Field(default=20, ge=20, le=1000, description="Number of steps per thrust")
    vibration_power: float = Field(default=0.5, ge=0.0, le=1.0, description="Vibration power")


class ExtendedORequest(_Request):
    current_vibration: float = Field(ge=0.0, le=1.0, description="Current vibration intensity that will be reduced")
    current_vacuum: float = Field(ge=0.0, le=1.0, description="Current vacuum intensity that will be reduced")
    hold_duration: int = Field(default=10000, ge=1000, le=60000, description="Milliseconds to hold the reduced intensity")
    minimum_level: float = Field(default=0.1, ge=0.0, le=0.3, description="Minimum intensity level during Extended O")
    restore_duration: int = Field(default=500, ge=0, le=5000, description="Milliseconds to restore (0 for instant)")


def parse_request(model: type[_Request], params: dict) -> _Request:
    """dict をリクエストモデルに変換する。検証エラーは InvalidParameters にする。"""
    try:
        return model.model_validate(params)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}" for err in e.errors()
        )
        raise InvalidParameters(problems) from e
