"""Unit tests for sources configuration models and loader"""

import logging
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from docs_sync.models.sources_config import SourceRepository, SourcesConfig
from docs_sync.utils.sources_loader import load_sources_config


def _repo(name: str, **kwargs) -> dict:
    return {"name": name, "repo_owner": "pact-foundation", "repo_name": f"pact-{name}", **kwargs}


class TestSourceRepository:
    """Test per-source settings"""

    def test_destination_defaults_to_implementation_guides(self):
        source = SourceRepository(**_repo("go"))

        assert source.destination_path == "implementation_guides/go"
        assert source.full_name == "pact-foundation/pact-go"
        assert source.markdown_root == ""
        assert source.branch is None
        assert source.paths == ["**/*.md", "*.md"]

    def test_paths_are_normalized(self):
        source = SourceRepository(
            **_repo("js", markdown_root="/docs/", destination="/guides/javascript/")
        )

        assert source.markdown_root == "docs"
        assert source.destination_path == "guides/javascript"

    @pytest.mark.parametrize("destination", ["../outside", "guides/../../etc", ""])
    def test_unsafe_destination_rejected(self, destination):
        with pytest.raises(ValidationError):
            SourceRepository(**_repo("go", destination=destination))

    def test_name_with_slash_rejected(self):
        with pytest.raises(ValidationError):
            SourceRepository(**_repo("go/v2"))


class TestSourcesConfig:
    """Test whole-file validation and lookups"""

    def test_overlapping_destinations_rejected(self):
        with pytest.raises(ValidationError, match="overlap"):
            SourcesConfig(
                sources={
                    "github_repos": [
                        _repo("go"),
                        _repo("go-v2", destination="implementation_guides/go/v2"),
                    ]
                }
            )

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            SourcesConfig(
                sources={"github_repos": [_repo("go"), _repo("go", destination="other/go")]}
            )

    def test_disabled_sources_do_not_conflict(self):
        config = SourcesConfig(
            sources={
                "github_repos": [
                    _repo("go"),
                    _repo("go-legacy", destination="implementation_guides/go", enabled=False),
                ]
            }
        )

        assert [s.name for s in config.get_enabled_github_repos()] == ["go"]
        assert config.get_source("go-legacy") is None

    def test_find_by_full_name_is_case_insensitive(self):
        config = SourcesConfig(sources={"github_repos": [_repo("jvm")]})

        assert config.find_by_full_name("Pact-Foundation/Pact-JVM").name == "jvm"
        assert config.find_by_full_name("someone/else") is None


class TestSourcesLoader:
    """Test loading sources.yaml"""

    def test_load_valid_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.yaml"
            path.write_text(
                """
docs_root: website/docs
sidebars_file: website/sidebars.json
sources:
  github_repos:
    - name: go
      repo_owner: pact-foundation
      repo_name: pact-go
      branch: master
"""
            )

            config = load_sources_config(path)

        assert config.docs_root == "website/docs"
        assert config.sidebars_file == "website/sidebars.json"
        assert config.get_source("go").branch == "master"
        assert config.refresh.enabled is False

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_sources_config("/nonexistent/sources.yaml")

    def test_empty_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.yaml"
            path.write_text("")

            with pytest.raises(ValueError, match="empty"):
                load_sources_config(path)

    def test_invalid_yaml(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.yaml"
            path.write_text("sources: [unclosed")

            with pytest.raises(ValueError, match="Invalid YAML"):
                load_sources_config(path)

    def test_refresh_enabled_env_override(self, monkeypatch):
        monkeypatch.setenv("REFRESH_ENABLED", "true")
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.yaml"
            path.write_text("docs_root: website/docs\n")

            config = load_sources_config(path)

        assert config.refresh.enabled is True

    def test_overlapping_destinations_reported_with_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.yaml"
            path.write_text(
                """
sources:
  github_repos:
    - name: go
      repo_owner: pact-foundation
      repo_name: pact-go
      destination: guides
    - name: js
      repo_owner: pact-foundation
      repo_name: pact-js
      destination: guides/js
"""
            )

            with pytest.raises(ValueError, match="Invalid sources in .*sources.yaml"):
                load_sources_config(path)

    def test_top_level_list_rejected(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.yaml"
            path.write_text("- go\n- js\n")

            with pytest.raises(ValueError, match="must be a mapping"):
                load_sources_config(path)

    def test_logs_each_destination(self, caplog):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.yaml"
            path.write_text(
                """
docs_root: website/docs
sources:
  github_repos:
    - name: rust
      repo_owner: pact-foundation
      repo_name: pact-reference
      markdown_root: rust
"""
            )

            with caplog.at_level(logging.INFO, logger="docs_sync.utils.sources_loader"):
                load_sources_config(path)

        assert (
            "pact-foundation/pact-reference:rust (default branch) -> "
            "website/docs/implementation_guides/rust" in caplog.text
        )
