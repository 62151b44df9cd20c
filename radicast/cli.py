"""
コマンドラインインターフェース

    radicast record --station TBS [--output-dir ./output] [--timeout 7200]
    radicast stations

record: 指定放送局で放送中の番組を終了まで録音し、保存先ディレクトリに保存する
stations: 認証エリアで受信可能な放送局IDを表示する
"""

import argparse
import asyncio
import signal
import sys
import tempfile
from typing import Callable, List, Optional

from . import __version__
from .auth import RadikoAuthenticator
from .context import SessionContext
from .converter import lookup_converter
from .errors import RadicastError
from .logging_config import reset_logging, setup_logging
from .program_info import ProgramInfoManager
from .recorder import RadikoRecorder
from .session import SessionState
from .utils.base import LoggerMixin
from .utils.config_utils import RecorderConfig, load_recorder_config
from .utils.path_utils import ensure_directory_path_exists


class RadicastCLI(LoggerMixin):
    """radicast CLIメインクラス"""

    VERSION = __version__

    def __init__(self,
                 recorder_factory: Optional[Callable[..., RadikoRecorder]] = None,
                 authenticator: Optional[RadikoAuthenticator] = None,
                 program_manager: Optional[ProgramInfoManager] = None):
        super().__init__()
        # 依存性注入（テスト用）
        self.recorder_factory = recorder_factory or RadikoRecorder
        self.authenticator = authenticator
        self.program_manager = program_manager

    def create_parser(self) -> argparse.ArgumentParser:
        """コマンドライン引数パーサーを作成"""
        parser = argparse.ArgumentParser(
            prog='radicast',
            description='radikoの放送中番組を録音してポッドキャスト形式で保存します'
        )
        parser.add_argument('--version', action='version', version=f'radicast {self.VERSION}')
        parser.add_argument('--config', help='設定ファイルパス（JSON）', default=None)
        parser.add_argument('--verbose', '-v', action='store_true', help='詳細ログを表示')

        subparsers = parser.add_subparsers(dest='command', required=True)

        record = subparsers.add_parser('record', help='放送中の番組を録音')
        record.add_argument('--station', '-s', help='放送局ID（例: TBS）')
        record.add_argument('--output-dir', '-o', dest='output_dir', help='保存先ディレクトリ')
        record.add_argument('--temp-dir', dest='temp_dir', help='作業ディレクトリ')
        record.add_argument('--bitrate', help='ビットレート（例: 64k）')
        record.add_argument('--buffer', type=int, help='番組終了後に追加で録音する秒数')
        record.add_argument('--converter', help='変換コマンドのパス（ffmpeg または avconv）')
        record.add_argument('--timeout', type=float, help='セッション全体の期限（秒）')

        subparsers.add_parser('stations', help='受信可能な放送局一覧を表示')

        return parser

    def _load_config(self, parsed_args: argparse.Namespace) -> RecorderConfig:
        overrides = {
            key: getattr(parsed_args, key, None)
            for key in ('station', 'output_dir', 'temp_dir', 'bitrate', 'buffer')
        }
        return load_recorder_config(parsed_args.config, overrides)

    def _setup_logging(self, config: RecorderConfig, verbose: bool = False) -> None:
        """ログ設定（--verbose指定時はコンソールにもDEBUGで出力）"""
        reset_logging()
        setup_logging(
            log_level='DEBUG' if verbose else config.log_level,
            log_file=config.log_file,
            console_output=True if verbose else None
        )

    def run(self, args: Optional[List[str]] = None) -> int:
        """CLIメインエントリーポイント"""
        parser = self.create_parser()
        parsed_args = parser.parse_args(args)

        try:
            config = self._load_config(parsed_args)
            self._setup_logging(config, parsed_args.verbose)

            if parsed_args.command == 'record':
                return asyncio.run(self._cmd_record(parsed_args, config))
            return asyncio.run(self._cmd_stations(parsed_args))

        except RadicastError as e:
            self.logger.error(f"エラー: {e}")
            print(f"エラーが発生しました: {e}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            print("\n操作がキャンセルされました", file=sys.stderr)
            return 1

    def _install_signal_handlers(self, ctx: SessionContext) -> None:
        """SIGINT/SIGTERM でセッションをキャンセル"""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, ctx.cancel, f"signal {signum.name}")
            except (NotImplementedError, RuntimeError):
                self.logger.debug(f"シグナルハンドラーを登録できません: {signum.name}")

    async def _cmd_record(self, parsed_args: argparse.Namespace, config: RecorderConfig) -> int:
        """録音コマンド"""
        if not config.station:
            print("放送局IDを指定してください（--station または設定ファイルの station）",
                  file=sys.stderr)
            return 1

        converter = lookup_converter(parsed_args.converter)
        temp_dir = config.temp_dir or tempfile.mkdtemp(prefix="radicast_")
        output_dir = ensure_directory_path_exists(config.output_dir)

        recorder = self.recorder_factory(
            station_id=config.station,
            converter=converter,
            temp_dir=temp_dir,
            bitrate=config.bitrate,
            buffer=config.buffer,
            authenticator=self.authenticator,
            program_manager=self.program_manager
        )

        print(f"録音開始: {config.station}")
        async with SessionContext(timeout=parsed_args.timeout) as ctx:
            self._install_signal_handlers(ctx)
            result = await recorder.run(ctx)

        saved = recorder.save(result, output_dir)
        print(f"保存完了: {saved.audio_path}")

        if result.state != SessionState.SUCCESS:
            print(f"録音は完全ではありません: 状態={result.state.value}, "
                  f"試行数={len(result.attempts)}", file=sys.stderr)
            return 2
        return 0

    async def _cmd_stations(self, parsed_args: argparse.Namespace) -> int:
        """放送局一覧コマンド"""
        authenticator = self.authenticator or RadikoAuthenticator()
        program_manager = self.program_manager or ProgramInfoManager()

        async with SessionContext() as ctx:
            self._install_signal_handlers(ctx)
            station_ids = await program_manager.station_list(ctx, authenticator)

        for station_id in station_ids:
            print(station_id)
        return 0


def main() -> None:
    """メインエントリーポイント"""
    cli = RadicastCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
