"""デバイスファクトリ

CONTROL_MODE の判定はここ1箇所のみ。
"""

from .base import ActuatorPort


def create_device(cfg=None) -> ActuatorPort:
    """設定に基づいて適切な ActuatorPort を生成して返す。"""
    if cfg is None:
        import settings as s_mod
        cfg = s_mod.settings

    mode = cfg.device.control_mode

    if mode == "buttplug":
        from .buttplug_device import ButtplugDevice
        return ButtplugDevice(
            url=cfg.server.url,
            client_name=cfg.server.client_name,
            name_prefix=cfg.device.name_prefix,
            scan_timeout=cfg.device.scan_timeout,
            command_timeout=cfg.device.command_timeout,
        )

    if mode == "dry_run":
        from .dry_run_device import DryRunDevice
        return DryRunDevice(
            layout=cfg.dry_run.layout,
            name=cfg.dry_run.device_name,
            reject_kinds=cfg.dry_run.reject_kinds,
            reject_linear=cfg.dry_run.reject_linear,
        )

    raise ValueError(f"不明な control_mode: {mode!r}（'buttplug' または 'dry_run' を設定してください）")
