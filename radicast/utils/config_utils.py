"""
設定ファイル管理ユーティリティ

JSON設定ファイルの読み込みと、録音設定のデフォルト値を提供します。
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from radicast.errors import ConfigError
from radicast.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class RecorderConfig:
    """録音設定"""
    station: str = ""
    bitrate: str = "64k"
    buffer: int = 60
    output_dir: str = "./output"
    temp_dir: str = ""
    log_level: str = "INFO"
    log_file: str = "radicast.log"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecorderConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"未知の設定キーを無視します: {unknown}")
        values = {k: v for k, v in data.items() if k in known}
        try:
            values['buffer'] = int(values.get('buffer', cls.buffer))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"bufferの値が不正です: {values.get('buffer')}") from e
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigManager:
    """統一設定管理クラス

    JSON設定ファイルの読み込みを統一処理します。

    Usage:
        config_manager = ConfigManager("config.json")
        config = config_manager.load_config(default_config)
    """

    def __init__(self, config_path: Union[str, Path], encoding: str = 'utf-8'):
        self.config_path = Path(config_path)
        self.encoding = encoding

    def load_config(self, default_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """設定ファイルを読み込み

        Args:
            default_config: デフォルト設定辞書

        Returns:
            設定辞書（ファイルが存在しない場合はデフォルト設定）

        Raises:
            ConfigError: ファイルが存在するがJSONとして解析できない場合
        """
        merged_config = dict(default_config or {})

        if not self.config_path.exists():
            logger.info(f"設定ファイルが存在しません。デフォルト設定を使用します: {self.config_path}")
            return merged_config

        try:
            with open(self.config_path, 'r', encoding=self.encoding) as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"設定ファイルJSON解析エラー: {e}",
                              context={'path': str(self.config_path)}) from e
        except OSError as e:
            raise ConfigError(f"設定ファイル読み込みエラー: {e}",
                              context={'path': str(self.config_path)}) from e

        if not isinstance(config, dict):
            raise ConfigError("設定データが辞書型ではありません",
                              context={'path': str(self.config_path)})

        merged_config.update(config)
        logger.debug(f"設定ファイル読み込み成功: {self.config_path}")
        return merged_config


def load_recorder_config(config_path: Optional[Union[str, Path]] = None,
                         overrides: Optional[Dict[str, Any]] = None) -> RecorderConfig:
    """録音設定を読み込み

    優先順位: overrides（Noneの値は無視） > 設定ファイル > デフォルト値

    Args:
        config_path: 設定ファイルパス（Noneならファイルを読まない）
        overrides: コマンドライン引数などの上書き値

    Returns:
        RecorderConfig: 録音設定
    """
    config = RecorderConfig().to_dict()
    if config_path is not None:
        config = ConfigManager(config_path).load_config(config)
    if overrides:
        config.update({k: v for k, v in overrides.items() if v is not None})
    return RecorderConfig.from_dict(config)
