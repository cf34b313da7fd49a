"""
Unit test configuration.

Every settings class reads os.environ and a relative ``.env``. Unit tests run
from an empty temporary directory with every setting variable unset, so only
values a test sets through monkeypatch reach the config classes.
"""

import pytest
from pydantic_settings import BaseSettings

import config


def _setting_env_names() -> set[str]:
    names = set()
    for obj in vars(config).values():
        if isinstance(obj, type) and issubclass(obj, BaseSettings) and obj is not BaseSettings:
            names.update(name.upper() for name in obj.model_fields)
    return names


SETTING_ENV_NAMES = _setting_env_names()


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in SETTING_ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
