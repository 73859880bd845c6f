from pathlib import Path

import pytest

from settings import Settings


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a fresh temp project. No real credentials needed.

    Directory layout mirrors the real project:
        input-menu/   photos to process
        tmp/          per-stage cache (created by Stage 1)
        output/       menu.json (created by Stage 1)
    """
    (tmp_path / "input-menu").mkdir()
    return Settings(
        replicate_api_token="test-token-not-used-in-unit-tests",
        openrouter_api_key="test-key-not-used-in-unit-tests",
        project_dir=tmp_path,
        remote_timeout_seconds=5.0,
    )
