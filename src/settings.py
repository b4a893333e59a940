"""
設定管理モジュール

読み込み優先順位（後勝ち）:
  1. config/default.toml  （デフォルト値・git管理）
  2. config/user.toml     （ユーザー上書き・gitignore）
  3. .env                 （接続先 URL・制御モード）
"""

import tomllib
import os
from pathlib import Path
from dataclasses import dataclass, field
from dotenv import load_dotenv

# .env を読み込む
load_dotenv()

# プロジェクトルート（src/ の一つ上）
_ROOT = Path(__file__).parent.parent
_DEFAULT_TOML = _ROOT / "config" / "default.toml"
_USER_TOML = _ROOT / "config" / "user.toml"


def _load_toml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict, override: dict) -> dict:
    """override を base にマージ（ネストも対応）"""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass
class ServerSettings:
    url: str = "ws://localhost:12345"
    client_name: str = "mcp-svakom-samneo"


@dataclass
class DeviceSettings:
    control_mode: str = "buttplug"  # "buttplug" または "dry_run"
    name_prefix: str = "Svakom Sam Neo"
    scan_timeout: float = 15.0
    command_timeout: float = 5.0


@dataclass
class PatternSettings:
    combo_pulse_interval_ms: int = 500
    wave_steps: int = 20
    restore_steps: int = 10
    linear_duration_ms: int = 100


@dataclass
class DispatcherSettings:
    zero_on_failed_encoding: bool = False


@dataclass
class DryRunSettings:
    layout: str = "indexed_dual"  # "indexed_dual" または "legacy"
    device_name: str = "Svakom Sam Neo 2 (dry run)"
    reject_kinds: list[str] = field(default_factory=list)
    reject_linear: bool = False


@dataclass
class McpSettings:
    server_name: str = "Svakom Sam Neo"


@dataclass
class DebugSettings:
    log_level: str = "INFO"
    log_to_file: bool = False
    log_file: str = "logs/samneo.log"


@dataclass
class Settings:
    server: ServerSettings = field(default_factory=ServerSettings)
    device: DeviceSettings = field(default_factory=DeviceSettings)
    patterns: PatternSettings = field(default_factory=PatternSettings)
    dispatcher: DispatcherSettings = field(default_factory=DispatcherSettings)
    dry_run: DryRunSettings = field(default_factory=DryRunSettings)
    mcp: McpSettings = field(default_factory=McpSettings)
    debug: DebugSettings = field(default_factory=DebugSettings)


def _apply_toml(settings: Settings, data: dict) -> None:
    """TOML の dict を Settings に適用する（未知のキーは無視）"""
    def _walk(obj, d: dict):
        for k, v in d.items():
            if isinstance(v, dict):
                sub = getattr(obj, k, None)
                if sub is not None:
                    _walk(sub, v)
            else:
                if hasattr(obj, k):
                    setattr(obj, k, v)

    _walk(settings, data)


def load(default_toml: Path = _DEFAULT_TOML, user_toml: Path = _USER_TOML) -> Settings:
    """設定を読み込んで Settings を返す"""
    default_data = _load_toml(default_toml)
    user_data = _load_toml(user_toml)
    merged = _deep_merge(default_data, user_data)

    s = Settings()
    _apply_toml(s, merged)

    # .env で上書き（設定されている場合のみ）
    s.server.url = os.getenv("BUTTPLUG_SERVER_URL", s.server.url)
    s.device.control_mode = os.getenv("SAMNEO_CONTROL_MODE", s.device.control_mode)

    return s


# モジュールロード時に一度だけ読み込む
settings = load()


def reload() -> None:
    """設定を再読み込みする"""
    global settings
    settings = load()
