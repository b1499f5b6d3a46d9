"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from doctrack_ocr.utils.config import (
    AppConfig,
    OCRConfig,
    PreprocessingConfig,
    QualityConfig,
    RetryConfig,
    load_config,
    validate_ocr_config,
)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "MICROBLINK_API_KEY",
        "GOOGLE_CLOUD_VISION_API_KEY",
        "DOCTRACK_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestPreprocessingConfig:
    """Tests for PreprocessingConfig defaults and overrides."""

    def test_defaults(self) -> None:
        cfg = PreprocessingConfig()
        assert cfg.deskew_enabled is True
        assert cfg.denoise_enabled is True
        assert cfg.contrast_enabled is True
        assert cfg.binarize_enabled is True
        assert cfg.contrast_factor == 1.5
        assert cfg.binarize_threshold == 128

    def test_override(self) -> None:
        cfg = PreprocessingConfig(deskew_enabled=False, contrast_factor=2.0)
        assert cfg.deskew_enabled is False
        assert cfg.contrast_factor == 2.0


class TestRetryConfig:
    """Tests for RetryConfig defaults."""

    def test_defaults(self) -> None:
        cfg = RetryConfig()
        assert cfg.max_retries == 3
        assert cfg.delay == 1.0
        assert cfg.backoff == 2.0


class TestOCRConfig:
    """Tests for OCRConfig defaults and backend availability flags."""

    def test_defaults(self) -> None:
        cfg = OCRConfig()
        assert cfg.default_language == "en"
        assert cfg.microblink_min_confidence == 80
        assert cfg.google_min_confidence == 70
        assert cfg.tesseract_cmd is None

    def test_cloud_backends_disabled_without_keys(self) -> None:
        cfg = OCRConfig()
        assert cfg.is_microblink_enabled is False
        assert cfg.is_google_vision_enabled is False
        assert cfg.is_tesseract_enabled is True

    def test_keys_enable_backends(self) -> None:
        cfg = OCRConfig(microblink_api_key="abc", google_vision_api_key="def")
        assert cfg.is_microblink_enabled is True
        assert cfg.is_google_vision_enabled is True

    def test_placeholder_and_blank_keys_disable_backends(self) -> None:
        cfg = OCRConfig(
            microblink_api_key="your_microblink_api_key",
            google_vision_api_key="   ",
        )
        assert cfg.is_microblink_enabled is False
        assert cfg.is_google_vision_enabled is False


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.quality, QualityConfig)
        assert isinstance(cfg.preprocessing, PreprocessingConfig)
        assert isinstance(cfg.retry, RetryConfig)
        assert isinstance(cfg.ocr, OCRConfig)
        assert cfg.quality.min_score == 50
        assert cfg.log_level == "INFO"

    def test_nested_override(self) -> None:
        cfg = AppConfig(
            preprocessing=PreprocessingConfig(deskew_enabled=False),
            log_level="DEBUG",
        )
        assert cfg.preprocessing.deskew_enabled is False
        assert cfg.log_level == "DEBUG"


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_load_default_config(self, config_dir: Path) -> None:
        cfg = load_config(config_dir / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.ocr.default_language == "en"
        assert cfg.retry.max_retries == 3

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert isinstance(cfg, AppConfig)
        assert cfg.quality.min_score == 50

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "preprocessing": {"deskew_enabled": False},
            "retry": {"max_retries": 5},
            "ocr": {"default_language": "de"},
            "log_level": "DEBUG",
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.preprocessing.deskew_enabled is False
        assert cfg.retry.max_retries == 5
        assert cfg.ocr.default_language == "de"
        assert cfg.log_level == "DEBUG"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, AppConfig)

    def test_environment_overrides(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("MICROBLINK_API_KEY", "env-mb")
        monkeypatch.setenv("GOOGLE_CLOUD_VISION_API_KEY", "env-gv")
        monkeypatch.setenv("DOCTRACK_LOG_LEVEL", "WARNING")

        cfg = load_config(tmp_path / "missing.yaml")
        assert cfg.ocr.microblink_api_key == "env-mb"
        assert cfg.ocr.google_vision_api_key == "env-gv"
        assert cfg.ocr.is_microblink_enabled is True
        assert cfg.log_level == "WARNING"

    def test_load_none_defaults_to_standard_path(self) -> None:
        cfg = load_config()
        assert isinstance(cfg, AppConfig)


class TestValidateOCRConfig:
    """Tests for validate_ocr_config."""

    def test_missing_keys_are_warnings(self) -> None:
        result = validate_ocr_config(OCRConfig())
        assert result.is_valid is True
        assert len(result.warnings) == 2
        assert result.errors == []

    def test_disabled_tesseract_is_error(self) -> None:
        result = validate_ocr_config(
            OCRConfig(
                microblink_api_key="a",
                google_vision_api_key="b",
                tesseract_enabled=False,
            )
        )
        assert result.is_valid is False
        assert result.warnings == []
        assert "Tesseract" in result.errors[0]
