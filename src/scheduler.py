"""協調スケジューラ

シーケンス中の待機はすべてここを通す。
待機前にキャンセルトークンを確認し、待機中にキャンセルされたら即座に起きる。
"""

import asyncio
import logging

from errors import SequenceCancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """1 回の呼び出し内で共有するキャンセルフラグ。"""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: str = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SequenceCancelled(self.reason)

    async def wait(self) -> None:
        await self._event.wait()


class Scheduler:
    """現在の論理タスクを N ミリ秒だけ止める。"""

    async def sleep(self, ms: float, token: CancelToken | None = None) -> None:
        """
        Args:
            ms: 待機時間（ms）。0 以下なら待たない
            token: 共有キャンセルトークン

        Raises:
            SequenceCancelled: 待機前または待機中にキャンセルされた
        """
        if token is None:
            if ms > 0:
                await asyncio.sleep(ms / 1000)
            return

        token.raise_if_cancelled()
        if ms <= 0:
            return
        try:
            await asyncio.wait_for(token.wait(), timeout=ms / 1000)
        except asyncio.TimeoutError:
            return
        logger.debug(f"[Scheduler] Woken by cancel: {token.reason}")
        token.raise_if_cancelled()
