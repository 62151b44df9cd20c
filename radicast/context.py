"""
セッションコンテキストモジュール

1回の録音セッション全体で共有するキャンセル・期限管理を提供します。
- 停止イベント（asyncio.Event）によるキャンセル通知
- 期限（タイムアウト）到達時の自動キャンセル
- 待機ポイント（HTTP通信・サブプロセス待ち・リトライ待機）の監視
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from .errors import SessionCancelledError
from .utils.base import LoggerMixin


class SessionContext(LoggerMixin):
    """キャンセル可能・期限付きのセッションコンテキスト

    Usage:
        async with SessionContext(timeout=7200) as ctx:
            result = await ctx.guard(fetch(), on_cancel=None)

    Note:
        処理の完了とキャンセルが同時に起きた場合は完了結果を優先する。
        キャンセル後も実行中の処理の結果を drain_timeout 秒だけ待ち、
        それでも結果が来なければ SessionCancelledError を送出する。
    """

    DRAIN_TIMEOUT = 10.0

    def __init__(self, timeout: Optional[float] = None, drain_timeout: Optional[float] = None):
        super().__init__()
        self.timeout = timeout
        self.drain_timeout = self.DRAIN_TIMEOUT if drain_timeout is None else drain_timeout
        self._stop_event = asyncio.Event()
        self._reason: Optional[str] = None
        self._deadline_handle: Optional[asyncio.TimerHandle] = None

    async def __aenter__(self) -> 'SessionContext':
        if self.timeout is not None:
            loop = asyncio.get_running_loop()
            self._deadline_handle = loop.call_later(
                self.timeout, self.cancel, "context deadline exceeded"
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._deadline_handle is not None:
            self._deadline_handle.cancel()
            self._deadline_handle = None

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "context canceled") -> None:
        """セッションをキャンセル（複数回呼んでも最初の理由を保持）"""
        if self._stop_event.is_set():
            return
        self._reason = reason
        self._stop_event.set()
        self.logger.info(f"セッションキャンセル: {reason}")

    def error(self) -> SessionCancelledError:
        """キャンセル理由を表す例外を生成"""
        return SessionCancelledError(self._reason or "context canceled")

    async def sleep(self, seconds: float) -> bool:
        """キャンセル可能な待機

        Returns:
            bool: 待機を完了した場合True、途中でキャンセルされた場合False
        """
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def guard(self,
                    operation: Awaitable[Any],
                    on_cancel: Optional[Callable[[], None]] = None,
                    drain_timeout: Optional[float] = None) -> Any:
        """処理の完了とキャンセルを同時に待つ

        Args:
            operation: 実行する処理（コルーチン）
            on_cancel: キャンセル時に呼ぶ中断処理（省略時はタスクをキャンセル）
            drain_timeout: キャンセル後に結果を待つ秒数

        Returns:
            処理の戻り値

        Raises:
            SessionCancelledError: 処理開始前にキャンセル済み、または
                キャンセル後に結果が得られなかった場合
            その他: 処理自体が送出した例外
        """
        if self.cancelled:
            if asyncio.iscoroutine(operation):
                operation.close()
            raise self.error()

        if drain_timeout is None:
            drain_timeout = self.drain_timeout

        task = asyncio.ensure_future(operation)
        stop_waiter = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stop_waiter.cancel()

        if not task.done():
            if on_cancel is None:
                task.cancel()
            else:
                on_cancel()

            done, _ = await asyncio.wait({task}, timeout=drain_timeout)
            if not done:
                self.logger.warning(f"キャンセル後の結果待ちがタイムアウト: {drain_timeout}秒")
                task.cancel()
                raise self.error()

        if task.cancelled():
            raise self.error()

        return task.result()
