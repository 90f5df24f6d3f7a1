"""Tests for the atomic import pipeline."""

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ledger_importer.config import ConfigError, load_import_config
from ledger_importer.models.worktree import WorktreeContext
from ledger_importer.pipeline import ImportPipeline, PipelineOptions, build_commit_message
from ledger_importer.vcs.worktree import RemovalResult, WorktreeError, WorktreeManager, run_git
from tests.conftest import UBS_PRINT, UBS_PRINT_UNKNOWN, UBS_STATEMENT, FakeLedger, add_pending, write_repo

ACCOUNT = "assets:bank:ubs:chf"


@pytest.fixture
def origin(tmp_path: Path) -> Path:
    """The repository the pipeline is started from."""
    return write_repo(tmp_path / "origin")


@pytest.fixture
def work(tmp_path: Path) -> Path:
    """The directory standing in for the isolated worktree."""
    return write_repo(tmp_path / "work")


@pytest.fixture
def manager(origin: Path, work: Path) -> MagicMock:
    """Worktree manager that hands out the work directory."""
    mock = MagicMock(spec=WorktreeManager)
    mock.create.return_value = WorktreeContext(
        uuid="abc123", path=work, branch="import-abc123", main_repo_path=origin
    )
    mock.remove.return_value = RemovalResult(success=True)
    return mock


def _incoming(origin: Path, name: str = "jan.csv") -> Path:
    path = origin / "statements" / "import" / name
    path.write_text(UBS_STATEMENT, encoding="utf-8")
    return path


def _ledger(print_output: str = UBS_PRINT, balance: str = "CHF 5954.80") -> FakeLedger:
    return FakeLedger(prints={"jan.csv": print_output}, balances={ACCOUNT: balance})


class TestImportPipeline:
    """Tests for ImportPipeline.run."""

    def test_successful_run(self, origin: Path, work: Path, manager: MagicMock) -> None:
        """Test the full happy path from incoming file to merge."""
        incoming = _incoming(origin)
        pipeline = ImportPipeline(origin, executor=_ledger(), worktree_manager=manager)

        result = pipeline.run(PipelineOptions(closing_balance="CHF 5954.80"))

        assert result.success is True, result.error
        assert list(result.steps) == [
            "worktree", "classify", "accounts", "dry_run", "import", "reconcile", "merge", "cleanup",
        ]
        assert result.worktree_id == "abc123"
        assert result.summary == "Imported 2 transaction(s) from 1 file(s)"
        assert result.steps["accounts"].details["added"] == [ACCOUNT, "expenses:groceries"]
        assert (work / "statements" / "done" / "ubs" / "chf" / "jan.csv").exists()

        manager.merge.assert_called_once()
        message = manager.merge.call_args[0][1]
        assert message == "Import: UBS CHF 2026-01-05 to 2026-01-10 (2 transactions)"
        assert result.steps["merge"].details["removed_incoming"] == ["jan.csv"]
        assert not incoming.exists()

        manager.remove.assert_called_once()
        assert manager.remove.call_args.kwargs["force"] is True
        assert result.steps["cleanup"].message == "Worktree cleaned up"

    def test_configuration_error(self, origin: Path, manager: MagicMock) -> None:
        """Test that an invalid configuration stops before any worktree exists."""
        loader = MagicMock(side_effect=ConfigError("'paths' section is required"))
        pipeline = ImportPipeline(origin, config_loader=loader, executor=_ledger(), worktree_manager=manager)

        result = pipeline.run()

        assert result.success is False
        assert result.error == "Configuration error: 'paths' section is required"
        assert result.hint == "Check config/import/providers.yaml"
        manager.create.assert_not_called()

    def test_worktree_creation_failure(self, origin: Path, manager: MagicMock) -> None:
        """Test that a failed worktree creation is reported without cleanup."""
        manager.create.side_effect = WorktreeError("Not a git repository: /x")
        pipeline = ImportPipeline(origin, executor=_ledger(), worktree_manager=manager)

        result = pipeline.run()

        assert result.error == "Failed to create worktree"
        assert result.steps["worktree"].success is False
        manager.remove.assert_not_called()

    def test_unknown_postings_abort_and_clean_up(self, origin: Path, manager: MagicMock) -> None:
        """Test that a dry run with unknown postings stops before import."""
        incoming = _incoming(origin)
        ledger = _ledger(print_output=UBS_PRINT_UNKNOWN)
        pipeline = ImportPipeline(origin, executor=ledger, worktree_manager=manager)

        result = pipeline.run()

        assert result.success is False
        assert result.error == "Dry run found unknown accounts or errors"
        assert result.hint == "Add rules to categorize unknown transactions, then retry"
        assert "import" not in result.steps
        assert ledger.commands("import") == []
        manager.merge.assert_not_called()
        assert incoming.exists()
        assert result.steps["cleanup"].message == "Worktree cleaned up after failure"

    def test_no_transactions(self, origin: Path, manager: MagicMock) -> None:
        """Test that an empty run succeeds and skips the later steps."""
        pipeline = ImportPipeline(origin, executor=FakeLedger(), worktree_manager=manager)

        result = pipeline.run()

        assert result.success is True
        assert result.summary == "No transactions found to import"
        for name in ("import", "reconcile", "merge"):
            assert result.steps[name].skipped is True
        assert result.steps["accounts"].message == "No accounts to declare"
        manager.merge.assert_not_called()

    def test_reconciliation_mismatch(self, origin: Path, manager: MagicMock) -> None:
        """Test that a balance mismatch prevents the merge."""
        _incoming(origin)
        pipeline = ImportPipeline(origin, executor=_ledger(balance="CHF 100.00"), worktree_manager=manager)

        result = pipeline.run(PipelineOptions(closing_balance="CHF 5954.80"))

        assert result.success is False
        assert (result.error or "").startswith("Balance mismatch")
        assert result.steps["reconcile"].success is False
        manager.merge.assert_not_called()

    def test_missing_closing_balance(self, origin: Path, manager: MagicMock) -> None:
        """Test that a statement without a closing balance fails reconciliation."""
        _incoming(origin)
        pipeline = ImportPipeline(origin, executor=_ledger(), worktree_manager=manager)

        result = pipeline.run()

        assert result.error == "No closing balance found in CSV metadata"
        manager.merge.assert_not_called()

    def test_merge_failure(self, origin: Path, manager: MagicMock) -> None:
        """Test that a failed merge leaves the incoming file in place."""
        incoming = _incoming(origin)
        manager.merge.side_effect = WorktreeError("Failed to merge import-abc123: conflict")
        pipeline = ImportPipeline(origin, executor=_ledger(), worktree_manager=manager)

        result = pipeline.run(PipelineOptions(closing_balance="CHF 5954.80"))

        assert result.success is False
        assert result.error == "Merge to main branch failed"
        assert result.steps["merge"].success is False
        assert incoming.exists()
        manager.remove.assert_called_once()

    def test_preserve_worktree(self, origin: Path, work: Path, manager: MagicMock) -> None:
        """Test that the worktree is kept when asked."""
        pipeline = ImportPipeline(origin, executor=FakeLedger(), worktree_manager=manager)

        result = pipeline.run(PipelineOptions(preserve_worktree=True))

        manager.remove.assert_not_called()
        assert result.steps["cleanup"].skipped is True
        assert str(work) in result.steps["cleanup"].message

    def test_skip_classify(self, origin: Path, work: Path, manager: MagicMock) -> None:
        """Test importing already-pending statements without classification."""
        incoming = _incoming(origin)
        add_pending(work, "ubs", "chf", "jan.csv", UBS_STATEMENT)
        pipeline = ImportPipeline(origin, executor=_ledger(), worktree_manager=manager)

        result = pipeline.run(PipelineOptions(skip_classify=True, closing_balance="CHF 5954.80"))

        assert result.success is True, result.error
        assert result.steps["classify"].skipped is True
        assert result.steps["merge"].details["removed_incoming"] == []
        assert incoming.exists()

    def test_cleanup_failure_is_recorded(self, origin: Path, manager: MagicMock) -> None:
        """Test that a failed cleanup does not change the run's outcome."""
        manager.remove.return_value = RemovalResult(success=False, error="Failed to remove worktree: busy")
        pipeline = ImportPipeline(origin, executor=FakeLedger(), worktree_manager=manager)

        result = pipeline.run()

        assert result.success is True
        assert result.steps["cleanup"].success is False
        assert result.steps["cleanup"].message == "Failed to remove worktree: busy"

    def test_unexpected_error_still_cleans_up(self, origin: Path, manager: MagicMock) -> None:
        """Test that an unexpected exception is reported and the worktree removed."""
        _incoming(origin)
        executor = MagicMock(side_effect=RuntimeError("hledger exploded"))
        pipeline = ImportPipeline(origin, executor=executor, worktree_manager=manager)

        result = pipeline.run()

        assert result.error == "Unexpected error: hledger exploded"
        manager.remove.assert_called_once()

    def test_accounts_step_failure_cleans_up(self, origin: Path, work: Path, manager: MagicMock) -> None:
        """Test that a missing main journal stops the run at the accounts step."""
        incoming = _incoming(origin)
        (work / ".hledger.journal").unlink()
        ledger = _ledger()
        pipeline = ImportPipeline(origin, executor=ledger, worktree_manager=manager)

        result = pipeline.run(PipelineOptions(closing_balance="CHF 5954.80"))

        assert result.success is False
        assert (result.error or "").startswith("Account declaration failed")
        assert result.steps["accounts"].success is False
        assert "dry_run" not in result.steps
        assert ledger.calls == []
        manager.merge.assert_not_called()
        manager.remove.assert_called_once()
        assert incoming.exists()

    def test_import_step_failure_cleans_up(self, origin: Path, manager: MagicMock) -> None:
        """Test that a failing hledger import stops before reconciliation and merge."""
        incoming = _incoming(origin)
        ledger = FakeLedger(prints={"jan.csv": UBS_PRINT}, failing={"import"})
        pipeline = ImportPipeline(origin, executor=ledger, worktree_manager=manager)

        result = pipeline.run(PipelineOptions(closing_balance="CHF 5954.80"))

        assert result.success is False
        assert result.steps["import"].success is False
        assert "reconcile" not in result.steps
        manager.merge.assert_not_called()
        manager.remove.assert_called_once()
        assert result.steps["cleanup"].message == "Worktree cleaned up after failure"
        assert incoming.exists()

    def test_malformed_suggestions_configuration(self, origin: Path, manager: MagicMock) -> None:
        """Test that a badly typed suggestions setting is reported, not raised."""
        config_file = origin / "config" / "import" / "providers.yaml"
        with config_file.open("a", encoding="utf-8") as f:
            f.write("suggestions:\n  budget_limit: lots\n")
        pipeline = ImportPipeline(origin, executor=_ledger(), worktree_manager=manager)

        result = pipeline.run()

        assert result.success is False
        assert "suggestions.budget_limit" in (result.error or "")
        manager.create.assert_not_called()

    def test_loads_configuration_from_origin(self, origin: Path, manager: MagicMock) -> None:
        """Test that configuration is loaded from the origin checkout."""
        loader = MagicMock(side_effect=load_import_config)
        pipeline = ImportPipeline(origin, config_loader=loader, executor=FakeLedger(), worktree_manager=manager)

        pipeline.run()

        loader.assert_called_once_with(origin.resolve())


class TestBuildCommitMessage:
    """Tests for build_commit_message."""

    def test_full_message(self) -> None:
        """Test a message with provider, currency, period and count."""
        message = build_commit_message("ubs", "chf", "2026-01-01", "2026-01-31", 42)
        assert message == "Import: UBS CHF 2026-01-01 to 2026-01-31 (42 transactions)"

    def test_without_identity_or_period(self) -> None:
        """Test the fallback for mixed batches."""
        assert build_commit_message(None, None, None, None, 0) == "Import: statements"

    def test_provider_without_currency(self) -> None:
        """Test that a missing currency leaves no double space."""
        assert build_commit_message("ubs", None, None, None, 3) == "Import: UBS (3 transactions)"


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestImportPipelineWithGit:
    """Tests running the pipeline against real git worktrees."""

    @pytest.fixture
    def git_origin(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
        """A committed ledger repository."""
        for variable in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
            monkeypatch.setenv(variable, "Test User")
        for variable in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
            monkeypatch.setenv(variable, "test@example.com")

        repo = write_repo(tmp_path / "origin")
        subprocess.run(["git", "init", "-q"], cwd=repo, check=True)
        run_git(["add", "-A"], repo)
        run_git(["commit", "-q", "-m", "Initial commit"], repo)
        return repo

    def test_failed_import_leaves_no_branch_or_worktree(self, git_origin: Path, tmp_path: Path) -> None:
        """Test that a failed run removes its worktree and import branch."""
        incoming = _incoming(git_origin)
        worktrees = tmp_path / "worktrees"
        worktrees.mkdir()
        ledger = FakeLedger(prints={"jan.csv": UBS_PRINT}, failing={"import"})
        pipeline = ImportPipeline(
            git_origin, executor=ledger, worktree_manager=WorktreeManager(base_dir=worktrees)
        )

        result = pipeline.run(PipelineOptions(closing_balance="CHF 5954.80"))

        assert result.success is False
        assert result.steps["import"].success is False
        assert result.steps["cleanup"].success is True
        assert run_git(["branch", "--list", "import-*"], git_origin) == ""
        listed = run_git(["worktree", "list", "--porcelain"], git_origin)
        assert [line for line in listed.splitlines() if line.startswith("worktree ")] == [
            f"worktree {git_origin.resolve()}"
        ]
        assert list(worktrees.iterdir()) == []
        assert incoming.exists()
