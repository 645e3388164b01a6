"""Tests for application settings."""

from pathlib import Path

from label_verifier.config import Settings


class TestSettings:
    """Test settings loading."""
    
    def test_defaults(self):
        settings = Settings()
        
        assert settings.ocr_backend == "tesseract"
        assert settings.ocr_source == "composite"
        assert settings.log_file == Path("logs/verification-log.json")
    
    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LABEL_VERIFIER_LOG_FILE", str(tmp_path / "log.json"))
        monkeypatch.setenv("LABEL_VERIFIER_OCR_SOURCE", "original")
        
        settings = Settings()
        
        assert settings.log_file == tmp_path / "log.json"
        assert settings.ocr_source == "original"
    
    def test_only_used_settings_declared(self):
        assert "debug" not in Settings.model_fields
