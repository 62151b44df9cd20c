"""
pytest configuration and fixtures for radicast tests
"""

import os
import sys

import pytest

# プロジェクトルートをパスに追加
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tests.utils.test_environment import TemporaryTestEnvironment


TEST_ENV_VARS = {
    "RADICAST_TEST_MODE": "true",
    "RADICAST_CONSOLE_OUTPUT": "true",
    "RADICAST_LOG_LEVEL": "DEBUG",
}


@pytest.fixture
def temp_env():
    """一時テスト環境fixture"""
    with TemporaryTestEnvironment() as env:
        yield env


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """テストセッション全体の環境設定"""
    previous = {name: os.environ.get(name) for name in TEST_ENV_VARS}
    os.environ.update(TEST_ENV_VARS)

    yield

    # クリーンアップ
    for name, value in previous.items():
        if value is None:
            os.environ.pop(name, None)
        else:
            os.environ[name] = value


@pytest.fixture(autouse=True)
def suppress_resource_warnings():
    """サブプロセス・ソケットのResourceWarningを無視"""
    import gc
    import warnings

    warnings.filterwarnings("ignore", category=ResourceWarning)

    yield

    gc.collect()
