import warnings

from receiptflow.ai.config import DEFAULT_CONFIG, clear_config_cache, get_config, get_default_backend, get_setting


def test_defaults_without_config_file():
    assert get_config() == {}
    assert get_default_backend() == "gemini"
    assert get_setting("video", "sample_interval") == 1.0
    assert get_setting("video", "frame_timeout") == 20.0
    assert get_setting("analysis", "consult_temperature") == 0.7
    assert get_setting("pipeline", "candidate_failure_policy") == "drop"
    assert get_setting("video", "unknown") is None


def test_receiptflow_toml(tmp_path):
    (tmp_path / "receiptflow.toml").write_text('[video]\nsample_interval = 0.5\n\n[export]\nvocabulary = "ja"\n')

    assert get_setting("video", "sample_interval") == 0.5
    assert get_setting("export", "vocabulary") == "ja"
    assert get_setting("video", "extract_timeout") == DEFAULT_CONFIG["video"]["extract_timeout"]


def test_pyproject_section(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "books"\n\n[tool.receiptflow.analysis]\nbackend = "openai"\n'
    )
    assert get_default_backend() == "openai"


def test_receiptflow_toml_takes_precedence(tmp_path):
    (tmp_path / "pyproject.toml").write_text('[tool.receiptflow.analysis]\nbackend = "openai"\n')
    (tmp_path / "receiptflow.toml").write_text('[analysis]\nbackend = "gemini"\n')
    assert get_default_backend() == "gemini"


def test_invalid_toml_warns_and_falls_back(tmp_path):
    (tmp_path / "receiptflow.toml").write_text("[analysis\nbackend = ")

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        assert get_config() == {}

    assert any("Invalid TOML" in str(w.message) for w in caught)
    assert get_default_backend() == "gemini"


def test_config_is_cached_until_cleared(tmp_path):
    assert get_setting("export", "vocabulary") == "en"
    (tmp_path / "receiptflow.toml").write_text('[export]\nvocabulary = "ja"\n')
    assert get_setting("export", "vocabulary") == "en"

    clear_config_cache()
    assert get_setting("export", "vocabulary") == "ja"
