"""
radicast - radikoの放送中番組を録音してポッドキャスト形式で保存するツール

主要コンポーネント:
- auth: radiko認証（auth1_fms/auth2_fms）
- program_info: 番組表取得・放送中番組の特定
- capture: rtmpdump → 変換コマンドの録音パイプライン
- session: 録音セッションのリトライ・状態管理
- merger: 部分ファイルの結合
- persister: 録音結果の保存
- cli: コマンドライン操作
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .auth import RadikoAuthenticator, AuthInfo
from .program_info import ProgramInfoManager, Program, ScheduleDocument, find_current_program
from .converter import Converter, lookup_converter
from .capture import CapturePipeline
from .context import SessionContext
from .session import SessionSupervisor, SessionState, SessionResult, CaptureAttempt, CaptureOutcome
from .merger import SegmentMerger
from .persister import ResultPersister, PersistedProgram
from .recorder import RadikoRecorder
from .errors import (
    RadicastError, ConfigError, TransportError, ProtocolError, ExtractionError,
    NotFoundError, CaptureError, MergeError, PersistenceError, SessionCancelledError
)

__all__ = [
    # 認証・番組情報
    'RadikoAuthenticator',
    'AuthInfo',
    'ProgramInfoManager',
    'Program',
    'ScheduleDocument',
    'find_current_program',

    # 録音
    'Converter',
    'lookup_converter',
    'CapturePipeline',
    'SessionContext',
    'SessionSupervisor',
    'SessionState',
    'SessionResult',
    'CaptureAttempt',
    'CaptureOutcome',
    'SegmentMerger',
    'ResultPersister',
    'PersistedProgram',
    'RadikoRecorder',

    # エラー
    'RadicastError',
    'ConfigError',
    'TransportError',
    'ProtocolError',
    'ExtractionError',
    'NotFoundError',
    'CaptureError',
    'MergeError',
    'PersistenceError',
    'SessionCancelledError',
]
