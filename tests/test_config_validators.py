# tests/test_config_validators.py

import config
import pytest
from config import BibleSettings
from pydantic import ValidationError


def test_openai_key_placeholder_warns(monkeypatch):
    warnings: list[str] = []

    def fake_warning(msg: str, *_a: object, **_kw: object) -> None:
        warnings.append(msg)

    monkeypatch.setattr(config.logger, "warning", fake_warning)
    BibleSettings(OPENAI_API_KEY="nope")
    assert any("OPENAI_API_KEY" in msg for msg in warnings)


def test_merge_model_defaults_to_extraction_model():
    settings = BibleSettings(OPENAI_API_KEY="valid", EXTRACTION_MODEL="model-x")
    assert settings.MERGE_MODEL == "model-x"
    explicit = BibleSettings(OPENAI_API_KEY="valid", MERGE_MODEL="model-y")
    assert explicit.MERGE_MODEL == "model-y"


def test_chunk_size_must_be_positive():
    with pytest.raises(ValidationError):
        BibleSettings(OPENAI_API_KEY="valid", MAX_CHUNK_SIZE=0)


def test_merge_strategy_is_restricted():
    with pytest.raises(ValidationError):
        BibleSettings(OPENAI_API_KEY="valid", CHARACTER_MERGE_STRATEGY="coin_flip")
