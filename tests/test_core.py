# test_core.py
"""Test config, models and password/token helpers"""

from dataclasses import FrozenInstanceError

import pytest
from pydantic import ValidationError

from logwarden.core.config import Settings, get_settings
from logwarden.core.models import Anomaly, FileNarrative
from logwarden.core.rules import DEFAULT_RULE_CONFIG, RuleConfig
from logwarden.core.security import generate_token, hash_password, hash_token, verify_password


# ===== SETTINGS =====

def test_settings_paths(tmp_path):
    settings = Settings(data_dir=tmp_path / "data")

    assert settings.db_path == tmp_path / "data" / "logwarden.db"
    assert settings.upload_dir == tmp_path / "data" / "uploads"
    assert settings.upload_dir.is_dir()


def test_settings_defaults(tmp_path):
    settings = Settings(data_dir=tmp_path)

    assert settings.max_upload_bytes == 10 * 1024 * 1024
    assert settings.session_ttl_hours == 24
    assert settings.min_password_length == 6
    assert settings.gemini_model == "gemini-2.0-flash"
    assert settings.llm_timeout == 30


def test_settings_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("LOGWARDEN_LLM_PROVIDER", " Ollama ")
    monkeypatch.setenv("LOGWARDEN_MAX_UPLOAD_SIZE_MB", "2")

    settings = Settings(data_dir=tmp_path)
    assert settings.llm_provider == "ollama"
    assert settings.max_upload_bytes == 2 * 1024 * 1024


def test_unknown_provider(tmp_path):
    with pytest.raises(ValidationError):
        Settings(data_dir=tmp_path, llm_provider="clippy")


def test_supported_files():
    settings = get_settings()
    assert settings.is_supported_file("proxy.csv")
    assert settings.is_supported_file("PROXY.CSV")
    assert not settings.is_supported_file("proxy.csv.exe")
    assert not settings.is_supported_file("proxy")


# ===== MODELS =====

def test_anomaly_model():
    anomaly = Anomaly(reason="Critical threat score detected: 7", confidence=95)
    assert anomaly.type_label == "Critical threat score detected"
    assert Anomaly(reason="Suspicious user agent detected", confidence=70).type_label == "Suspicious user agent detected"

    with pytest.raises(ValidationError):
        Anomaly(reason="x", confidence=101)

    with pytest.raises(ValidationError):
        anomaly.confidence = 10


def test_file_narrative_aliases():
    narrative = FileNarrative.model_validate({
        "summary": "ok",
        "keyFindings": ["a"],
        "recommendedActions": ["b"],
        "riskLevel": "Low",
        "aiConfidenceScore": 60,
    })
    assert narrative.key_findings == ["a"]
    assert narrative.model_dump(by_alias=True)["aiConfidenceScore"] == 60


def test_rule_config_is_frozen():
    with pytest.raises(FrozenInstanceError):
        DEFAULT_RULE_CONFIG.rapid_requests = 1
    assert RuleConfig(rapid_requests=1).rapid_requests == 1
    assert DEFAULT_RULE_CONFIG.rapid_requests == 10


# ===== SECURITY =====

def test_password_hashing():
    stored = hash_password("correct-horse", iterations=1000)

    assert stored.startswith("pbkdf2_sha256$1000$")
    assert "correct-horse" not in stored
    assert verify_password("correct-horse", stored)
    assert not verify_password("wrong-horse", stored)

    # Fresh salt every time
    assert hash_password("correct-horse", iterations=1000) != stored


def test_verify_bad_hash_format():
    assert not verify_password("x", "not-a-hash")
    assert not verify_password("x", "md5$1$abc$def")


def test_tokens():
    token = generate_token()
    assert len(token) >= 40
    assert generate_token() != token
    assert hash_token(token) == hash_token(token)
    assert hash_token(token) != token
