"""
radicast テストパッケージ

このパッケージはradicastの全モジュールに対する単体テストを提供します。

テスト構造:
- test_auth.py: 認証モジュールのテスト
- test_program_info.py: 番組情報モジュールのテスト
- test_converter.py: 変換コマンドのテスト
- test_capture.py: 録音パイプラインのテスト
- test_context.py: セッションコンテキストのテスト
- test_session.py: 録音セッション監視のテスト
- test_merger.py: 部分ファイル結合のテスト
- test_persister.py: 録音結果保存のテスト
- test_recorder.py: 録音実行のテスト
- test_config.py: 設定管理のテスト
- test_cli.py: CLIインターフェースのテスト
"""

import sys
from pathlib import Path

# プロジェクトルートをパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
