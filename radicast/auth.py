"""
radiko認証モジュール

このモジュールはradikoのストリーミング用認証（auth1_fms/auth2_fms）を行います。
- プレイヤー（swf）のダウンロード
- swfextractによる認証キー画像の抽出
- 部分キーの生成
- 認証トークンとエリアIDの取得

認証情報は試行ごとに取得し、保存しない。
"""

import asyncio
import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import aiohttp

from .context import SessionContext
from .errors import ExtractionError, ExtractorNotFoundError, ProtocolError, TransportError
from .utils.base import LoggerMixin
from .utils.network_utils import create_radiko_session
from .utils.path_utils import scoped_temp_file
from .utils.process_utils import find_command, format_command, kill_process

PLAYER_URL = "http://radiko.jp/apps/js/flash/myplayer-release.swf"


@dataclass(frozen=True)
class AuthInfo:
    """認証情報を保持するデータクラス"""
    auth_token: str
    area_id: str


def parse_area_id(body: str) -> str:
    """auth2_fms のレスポンス本文からエリアIDを取り出す

    本文はカンマ区切り（例: "JP13,東京都,tokyo Japan"）で、先頭の値がエリアID。
    3項目未満、または先頭が空の場合は認証失敗とする。4項目目以降は無視する。

    Raises:
        ProtocolError: 形式が不正な場合
    """
    lines = [line.strip() for line in body.splitlines() if line.strip()]
    if not lines:
        raise ProtocolError("failed to auth", context={'stage': 'auth2', 'body': ''})

    fields = lines[0].split(',')
    if len(fields) < 3 or not fields[0].strip():
        raise ProtocolError("failed to auth", context={'stage': 'auth2', 'body': lines[0][:100]})

    return fields[0].strip()


class RadikoAuthenticator(LoggerMixin):
    """radiko認証を管理するクラス"""

    # radiko API エンドポイント
    PLAYER_URL = PLAYER_URL
    AUTH1_URL = "https://radiko.jp/v2/api/auth1_fms"
    AUTH2_URL = "https://radiko.jp/v2/api/auth2_fms"

    # swf内の認証キー画像のリソースID
    KEY_RESOURCE_ID = "12"

    # 認証に必要なヘッダー（radiko側が要求する固定値）
    AUTH_HEADERS = {
        'pragma': 'no-cache',
        'X-Radiko-App': 'pc_ts',
        'X-Radiko-App-Version': '4.0.0',
        'X-Radiko-User': 'test-stream',
        'X-Radiko-Device': 'pc',
    }

    def __init__(self, timeout: int = 30, swfextract_path: Optional[str] = None):
        super().__init__()
        self.timeout = timeout
        self.swfextract_path = swfextract_path

    async def authenticate(self, ctx: SessionContext) -> AuthInfo:
        """認証を実行し、認証トークンとエリアIDを取得

        一時ファイル（swf・キー画像）はエラー・キャンセル時も含めて必ず削除する。

        Raises:
            TransportError: 通信エラー・ステータス異常
            ExtractionError: swfextract が見つからない（ExtractorNotFoundError、リトライしない）、または失敗
            ProtocolError: レスポンスの形式不正
            SessionCancelledError: キャンセル
        """
        self.logger.info("radiko認証を開始")

        with scoped_temp_file(suffix='.swf') as swf_path, \
                scoped_temp_file(suffix='.png') as key_path:
            async with create_radiko_session(self.timeout) as session:
                await ctx.guard(self._download_player(session, swf_path))
                await self._extract_key_image(ctx, swf_path, key_path)

                auth_token, key_length, key_offset = await ctx.guard(self._request_auth1(session))
                partial_key = self._read_partial_key(key_path, key_offset, key_length)

                area_id = await ctx.guard(self._request_auth2(session, auth_token, partial_key))

        self.logger.info(f"認証完了: area_id={area_id}")
        return AuthInfo(auth_token=auth_token, area_id=area_id)

    async def _download_player(self, session: aiohttp.ClientSession, swf_path: Path) -> None:
        """プレイヤーを一時ファイルにダウンロード"""
        self.logger.info(f"GET {self.PLAYER_URL}")
        try:
            async with session.get(self.PLAYER_URL) as response:
                if not 200 <= response.status < 300:
                    raise TransportError(f"プレイヤー取得失敗: HTTP {response.status}",
                                         status=response.status,
                                         context={'stage': 'player', 'url': str(self.PLAYER_URL)})
                with open(swf_path, 'wb') as f:
                    async for chunk in response.content.iter_chunked(8192):
                        f.write(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"プレイヤー取得エラー: {e}",
                                 context={'stage': 'player', 'url': str(self.PLAYER_URL)}) from e

    async def _extract_key_image(self, ctx: SessionContext, swf_path: Path, key_path: Path) -> None:
        """swfextract でキー画像を抽出"""
        swfextract = self.swfextract_path or find_command(['swfextract'])
        if not swfextract:
            raise ExtractorNotFoundError("swfextract が見つかりません", context={'stage': 'extract'})

        cmd = [swfextract, '-b', self.KEY_RESOURCE_ID, str(swf_path), '-o', str(key_path)]
        self.logger.debug(f"swfextract command: {format_command(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise ExtractionError(f"swfextract の起動に失敗しました: {e}",
                                  context={'stage': 'extract'}) from e

        async def wait_process() -> Tuple[int, bytes]:
            _, stderr = await process.communicate()
            return process.returncode, stderr

        returncode, stderr = await ctx.guard(wait_process(), on_cancel=lambda: kill_process(process))
        if returncode != 0:
            raise ExtractionError(
                f"swfextract が失敗しました: {stderr.decode('utf-8', errors='replace').strip()}",
                context={'stage': 'extract', 'returncode': returncode}
            )

    async def _request_auth1(self, session: aiohttp.ClientSession) -> Tuple[str, int, int]:
        """認証開始リクエスト（認証トークン・キー長・キー位置を取得）"""
        self.logger.info(f"POST {self.AUTH1_URL}")
        try:
            async with session.post(self.AUTH1_URL, headers=self.AUTH_HEADERS) as response:
                if not 200 <= response.status < 300:
                    raise TransportError(f"auth1 失敗: HTTP {response.status}",
                                         status=response.status, context={'stage': 'auth1'})
                headers = response.headers
                auth_token = headers.get('X-Radiko-Authtoken')
                key_length = headers.get('X-Radiko-Keylength')
                key_offset = headers.get('X-Radiko-Keyoffset')
                await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"auth1 リクエストエラー: {e}", context={'stage': 'auth1'}) from e

        if not auth_token:
            raise ProtocolError("auth token is empty", context={'stage': 'auth1'})
        if not key_length:
            raise ProtocolError("keylength is empty", context={'stage': 'auth1'})
        if not key_offset:
            raise ProtocolError("keyoffset is empty", context={'stage': 'auth1'})

        try:
            return auth_token, int(key_length), int(key_offset)
        except ValueError as e:
            raise ProtocolError(f"キー情報が数値ではありません: {e}",
                                context={'stage': 'auth1', 'keylength': key_length,
                                         'keyoffset': key_offset}) from e

    def _read_partial_key(self, key_path: Path, offset: int, length: int) -> str:
        """キー画像から部分キーを生成"""
        if offset < 0 or length <= 0:
            raise ProtocolError("キー情報が不正です",
                                context={'stage': 'partialkey', 'offset': offset, 'length': length})
        try:
            with open(key_path, 'rb') as f:
                f.seek(offset)
                data = f.read(length)
        except OSError as e:
            raise ProtocolError(f"キー画像の読み込みに失敗しました: {e}",
                                context={'stage': 'partialkey'}) from e

        if len(data) != length:
            raise ProtocolError("キー画像のサイズが不足しています",
                                context={'stage': 'partialkey', 'offset': offset,
                                         'length': length, 'read': len(data)})

        return base64.b64encode(data).decode('ascii')

    async def _request_auth2(self, session: aiohttp.ClientSession,
                             auth_token: str, partial_key: str) -> str:
        """認証完了リクエスト（エリアIDを取得）"""
        self.logger.info(f"POST {self.AUTH2_URL}")
        headers = dict(self.AUTH_HEADERS)
        headers['X-Radiko-Authtoken'] = auth_token
        headers['X-Radiko-Partialkey'] = partial_key

        try:
            async with session.post(self.AUTH2_URL, headers=headers) as response:
                if not 200 <= response.status < 300:
                    raise TransportError(f"auth2 失敗: HTTP {response.status}",
                                         status=response.status, context={'stage': 'auth2'})
                body = (await response.read()).decode('utf-8', errors='replace')
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"auth2 リクエストエラー: {e}", context={'stage': 'auth2'}) from e

        return parse_area_id(body)
