"""例外定義

デバイス制御で発生するエラーの分類。
ハンドラ層で HapticsError をまとめて捕捉し、失敗レスポンスに変換する。
"""


class HapticsError(Exception):
    """このプロジェクトの全エラーの基底クラス。"""


class CapabilityIndeterminate(HapticsError):
    """能力属性からプロファイルを判定できない（致命的ではない、Legacy 扱い）。"""


class InvalidParameters(HapticsError):
    """デバイス I/O 前に弾かれる不正パラメータ。"""


class DeviceCommandFailed(HapticsError):
    """デバイスがコマンドを拒否した、または送信できなかった。"""


class EncodingAttemptFailed(HapticsError):
    """フォールバックチェーン中の 1 エンコーディングの失敗（次を試す）。"""

    def __init__(self, label: str, reason: str):
        super().__init__(f"{label}: {reason}")
        self.label = label
        self.reason = reason


class AllEncodingsFailed(HapticsError):
    """バキュームの全エンコーディングが失敗した。"""

    def __init__(self, attempts: list[EncodingAttemptFailed]):
        self.attempts = list(attempts)
        detail = "; ".join(str(a) for a in self.attempts) or "no encodings configured"
        super().__init__(f"All vacuum encodings failed ({detail})")


class SequenceCancelled(HapticsError):
    """キャンセルトークンによりシーケンスが中断された。"""
