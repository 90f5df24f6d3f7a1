"""Tests for mapping statement files to rules files."""

from pathlib import Path

from ledger_importer.processing.rules_matcher import (
    find_rules_for_csv,
    glob_matches,
    literal_prefix,
    load_rules_mapping,
    resolve_source_path,
)


class TestLoadRulesMapping:
    """Tests for load_rules_mapping."""

    def test_resolves_relative_sources(self, repo: Path) -> None:
        """Test that relative source locators resolve against the rules directory."""
        mapping = load_rules_mapping(repo / "statements" / "rules")
        expected = str(repo / "statements" / "pending" / "ubs" / "chf" / "*.csv")
        assert mapping[expected] == str((repo / "statements" / "rules" / "ubs-chf.rules").resolve())

    def test_skips_files_without_source(self, tmp_path: Path) -> None:
        """Test that rules files without a source directive are ignored."""
        (tmp_path / "a.rules").write_text("# source commented.csv\nskip 1\n", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("source x.csv\n", encoding="utf-8")
        assert load_rules_mapping(tmp_path) == {}

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test that a missing rules directory yields an empty mapping."""
        assert load_rules_mapping(tmp_path / "missing") == {}

    def test_glob_characters_preserved(self, tmp_path: Path) -> None:
        """Test that resolution does not expand wildcards."""
        resolved = resolve_source_path("../pending/acc*.csv", tmp_path / "rules" / "a.rules")
        assert resolved == str(tmp_path / "pending" / "acc*.csv")


class TestFindRulesForCsv:
    """Tests for the four matching tiers."""

    def test_exact_match(self) -> None:
        """Test that an exact path match is found."""
        mapping = {"/data/pending/ubs.csv": "/rules/ubs.rules"}
        assert find_rules_for_csv("/data/pending/ubs.csv", mapping) == "/rules/ubs.rules"

    def test_normalized_match(self) -> None:
        """Test that dot segments are normalized before comparing."""
        mapping = {"/data/rules/../pending/ubs.csv": "/rules/ubs.rules"}
        assert find_rules_for_csv("/data/pending/./ubs.csv", mapping) == "/rules/ubs.rules"

    def test_glob_match(self) -> None:
        """Test that glob locators match files in their directory."""
        mapping = {"/data/pending/ubs/chf/*.csv": "/rules/ubs.rules"}
        assert find_rules_for_csv("/data/pending/ubs/chf/jan.csv", mapping) == "/rules/ubs.rules"

    def test_glob_does_not_cross_directories(self) -> None:
        """Test that a wildcard stays within one path segment."""
        mapping = {"/data/pending/ubs/chf/*.csv": "/rules/ubs.rules"}
        assert find_rules_for_csv("/data/pending/ubs/chf/sub/jan.csv", mapping) is None
        assert glob_matches("/data/pending/ubs/chf/jan.csv", "/data/pending/*/chf/*.csv") is True
        assert glob_matches("/data/pending/ubs/chf/jan.csv", "/data/*/jan.csv") is False

    def test_filename_fallback_after_move(self) -> None:
        """Test that a file moved to done still finds its rules by name."""
        mapping = {"/data/pending/ubs/chf/ubs-chf-*.csv": "/rules/ubs.rules"}
        assert find_rules_for_csv("/data/done/ubs/chf/ubs-chf-jan.csv", mapping) == "/rules/ubs.rules"

    def test_longest_literal_prefix_wins(self) -> None:
        """Test that account10* beats account1* for account10 files."""
        mapping = {
            "/elsewhere/account1*.csv": "/rules/account1.rules",
            "/elsewhere/account10*.csv": "/rules/account10.rules",
        }
        assert find_rules_for_csv("/data/account10-x.csv", mapping) == "/rules/account10.rules"
        assert find_rules_for_csv("/data/account1-x.csv", mapping) == "/rules/account1.rules"

    def test_path_match_beats_longer_filename_prefix(self) -> None:
        """Test that a glob match is preferred over a more specific filename match."""
        mapping = {
            "/data/pending/ubs/*.csv": "/rules/path.rules",
            "/other/ubs-chf-longname*.csv": "/rules/name.rules",
        }
        assert find_rules_for_csv("/data/pending/ubs/ubs-chf-longname.csv", mapping) == "/rules/path.rules"

    def test_wildcard_only_basename_never_falls_back(self) -> None:
        """Test that a locator with no literal basename prefix does not bind by name."""
        mapping = {"/data/pending/ubs/*.csv": "/rules/ubs.rules"}
        assert find_rules_for_csv("/data/done/revolut/jan.csv", mapping) is None

    def test_no_match(self) -> None:
        """Test that unrelated files find nothing."""
        assert find_rules_for_csv("/data/x.csv", {"/data/y.csv": "/rules/y.rules"}) is None

    def test_literal_prefix(self) -> None:
        """Test literal prefix extraction."""
        assert literal_prefix("account1*.csv") == "account1"
        assert literal_prefix("plain.csv") == "plain.csv"
        assert literal_prefix("*.csv") == ""
