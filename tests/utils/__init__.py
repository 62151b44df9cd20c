"""テスト用ユーティリティ"""
