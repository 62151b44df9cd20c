"""
エラー定義モジュール

radicastの統一例外階層を提供します。
- エラーカテゴリ・重要度の分類
- 発生箇所を示すコンテキスト情報
- セッション監視側が参照するリトライ可否フラグ

リトライの判断はセッション監視（session.py）だけが行い、
下位コンポーネントは例外を送出するのみで内部リトライはしない。
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """エラー重要度"""
    LOW = "low"           # 軽微な警告
    MEDIUM = "medium"     # 注意が必要なエラー
    HIGH = "high"         # 重要なエラー
    CRITICAL = "critical" # 致命的なエラー


class ErrorCategory(Enum):
    """エラーカテゴリ"""
    AUTHENTICATION = "authentication"     # 認証関連
    NETWORK = "network"                   # ネットワーク関連
    PROGRAM = "program"                   # 番組表関連
    RECORDING = "recording"               # 録音関連
    FILE_SYSTEM = "file_system"           # ファイルシステム関連
    CONFIGURATION = "configuration"       # 設定関連
    SYSTEM = "system"                     # システム関連
    UNKNOWN = "unknown"                   # 不明


class RadicastError(Exception):
    """radicast基底例外クラス"""

    retryable = True

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式に変換"""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'retryable': self.retryable,
            'context': self.context,
        }


class ConfigError(RadicastError):
    """設定エラー（外部コマンド未検出など。リトライしない）"""

    retryable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.CONFIGURATION, ErrorSeverity.CRITICAL, context)


class TransportError(RadicastError):
    """HTTP通信エラー"""

    def __init__(self, message: str, status: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.NETWORK, ErrorSeverity.MEDIUM, context)
        self.status = status


class ProtocolError(RadicastError):
    """認証ハンドシェイク・APIレスポンスの形式不正"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.AUTHENTICATION, ErrorSeverity.HIGH, context)


class ExtractionError(RadicastError):
    """認証キー画像の抽出エラー"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.AUTHENTICATION, ErrorSeverity.HIGH, context)


class ExtractorNotFoundError(ExtractionError, ConfigError):
    """swfextract 未検出（設定エラーとして扱い、リトライしない）"""

    retryable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        RadicastError.__init__(self, message, ErrorCategory.CONFIGURATION,
                               ErrorSeverity.CRITICAL, context)


class NotFoundError(RadicastError):
    """放送中の番組が見つからない"""

    retryable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.PROGRAM, ErrorSeverity.MEDIUM, context)


class CaptureError(RadicastError):
    """録音パイプライン（rtmpdump/変換コマンド）エラー"""

    def __init__(self, message: str, returncode: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.RECORDING, ErrorSeverity.HIGH, context)
        self.returncode = returncode


class MergeError(RadicastError):
    """部分ファイル結合エラー（部分ファイルは残す）"""

    retryable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.RECORDING, ErrorSeverity.HIGH, context)


class PersistenceError(RadicastError):
    """保存エラー"""

    retryable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.FILE_SYSTEM, ErrorSeverity.HIGH, context)


class SessionCancelledError(RadicastError):
    """セッションのキャンセル・期限切れ"""

    retryable = False

    def __init__(self, message: str = "context canceled", context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.SYSTEM, ErrorSeverity.LOW, context)
