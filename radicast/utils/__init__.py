"""
radicast ユーティリティモジュール

共通機能やヘルパー関数を提供するユーティリティパッケージ
"""

from typing import List
from .base import LoggerMixin
from .datetime_utils import parse_radiko_time, now_jst, JST
from .path_utils import ensure_directory_path_exists, scoped_temp_file, rename_or_copy
from .network_utils import create_radiko_session

__all__: List[str] = [
    'LoggerMixin',
    'parse_radiko_time',
    'now_jst',
    'JST',
    'ensure_directory_path_exists',
    'scoped_temp_file',
    'rename_or_copy',
    'create_radiko_session'
]
