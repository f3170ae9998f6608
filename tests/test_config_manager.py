"""Tests for TOML configuration handling."""

from impactgraph_cli import config_manager


class TestLLMConfig:
    def test_defaults_to_heuristic(self):
        assert config_manager.load_config()["provider"] == "heuristic"

    def test_save_preserves_analysis_section(self):
        config_manager.save_analysis_config(oracle_timeout=5)
        config_manager.save_config("openai", "gpt-4o-mini", api_key="sk-1")

        full = config_manager.load_full_config()

        assert full["llm"] == {"provider": "openai", "model": "gpt-4o-mini", "api_key": "sk-1"}
        assert full["analysis"]["oracle_timeout"] == 5

    def test_clear(self):
        config_manager.save_config("groq", "llama", api_key="k")
        config_manager.clear_config()
        assert config_manager.load_config()["provider"] == "heuristic"

    def test_unreadable_file_ignored(self, _isolated_home):
        _isolated_home.mkdir(parents=True, exist_ok=True)
        (_isolated_home / "config.toml").write_text("[llm\nprovider = ")

        assert config_manager.load_full_config() == {}


class TestAnalysisConfig:
    def test_merged_over_defaults(self):
        config_manager.save_analysis_config(max_concurrency=2, bogus=1)

        merged = config_manager.load_analysis_config()

        assert merged["max_concurrency"] == 2
        assert merged["oracle_timeout"] == 30
        assert "bogus" not in merged

    def test_unknown_provider_falls_back(self):
        assert config_manager.get_provider_config("nope")["provider"] == "heuristic"
