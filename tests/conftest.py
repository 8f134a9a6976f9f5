from pathlib import Path

import pytest

from canvass.app.core.config import Settings


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        DATABASE_URL=f"sqlite:///{tmp_path / 'data' / 'questionnaire.db'}",
        LOG_PATH=str(tmp_path / "logs"),
        UPLOAD_DIR=str(tmp_path / "uploads"),
        ADMIN_PASSWORD_FILE=str(tmp_path / "data" / "admin_password.txt"),
        ADMIN_PASSWORD=None,
        SECRET_KEY="test-secret",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)
