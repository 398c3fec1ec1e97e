"""Tests for the GPO migration pipeline."""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gpotools import logging as gpotools_logging
from gpotools.policy.migrate import (
    REPORT_VERSION,
    analyze_gpo,
    collect_entries,
    copy_required_files,
    report_to_dict,
)
from gpotools.policy.report import GpoReport
from gpotools.policy.types import (
    REG_DWORD,
    REG_SZ,
    ConfiguredSetting,
    FileStatus,
    MatchStrategy,
    MigrationContext,
    Scope,
)
from helpers import CHROME_KEY, entry, write_gpo

pytestmark = pytest.mark.usefixtures("reset_logging")

HOMEPAGE = (CHROME_KEY, "HomepageLocation", REG_SZ, "https://example.com")
NEW_TAB = (CHROME_KEY, "HomepageIsNewTabPage", REG_DWORD, 0)
UNKNOWN = (r"Software\Policies\Contoso", "Unmanaged", REG_DWORD, 1)


@pytest.fixture
def ctx(admx_store):
    return MigrationContext(admx_store=admx_store, language="en-US")


class TestCollectEntries:
    """Decoding both scopes of a GPO folder."""

    def test_both_scopes(self, tmp_path):
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE], user=[NEW_TAB, UNKNOWN])
        entries, missing, failed = collect_entries(gpo_dir)
        assert len(entries[Scope.MACHINE]) == 1
        assert len(entries[Scope.USER]) == 2
        assert entries[Scope.USER][0].scope == Scope.USER
        assert missing == []
        assert failed == []

    def test_missing_scope(self, tmp_path):
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE])
        entries, missing, failed = collect_entries(gpo_dir)
        assert entries[Scope.USER] == []
        assert missing == [Scope.USER]

    def test_corrupt_scope_does_not_stop_the_other(self, tmp_path):
        gpo_dir = write_gpo(tmp_path, machine=b"not a policy file at all", user=[NEW_TAB])
        entries, missing, failed = collect_entries(gpo_dir)
        assert failed == [Scope.MACHINE]
        assert entries[Scope.MACHINE] == []
        assert [e.value_name for e in entries[Scope.USER]] == ["HomepageIsNewTabPage"]

    def test_header_only_scope_is_empty_not_failed(self, tmp_path):
        gpo_dir = write_gpo(tmp_path, machine=b"PReg\x01\x00\x00\x00", user=[NEW_TAB])
        entries, missing, failed = collect_entries(gpo_dir)
        assert failed == []
        assert missing == []
        assert entries[Scope.MACHINE] == []
        assert len(entries[Scope.USER]) == 1


class TestAnalyzeGpo:
    """End-to-end analysis of one GPO."""

    def test_registry_matches(self, tmp_path, ctx):
        gpo_dir = write_gpo(tmp_path / "Policies", machine=[HOMEPAGE, UNKNOWN], user=[NEW_TAB])

        result = analyze_gpo(ctx, gpo_dir)

        assert result.has_input
        assert len(result.all_entries) == 3
        assert sorted(m.policy_name for m in result.matches) == [
            "HomepageIsNewTabPage",
            "HomepageLocation",
        ]
        assert all(m.strategy == MatchStrategy.REGISTRY_KEY_VALUE for m in result.matches)
        assert result.required.admx_files == ["chrome.admx"]
        assert result.required.files[0].status == FileStatus.AVAILABLE
        assert result.summary.files_scanned == 1
        assert result.summary.matches == 2

    def test_empty_gpo_has_no_input(self, tmp_path, ctx):
        gpo_dir = tmp_path / "{00000000-0000-0000-0000-000000000000}"
        gpo_dir.mkdir()

        result = analyze_gpo(ctx, gpo_dir)

        assert not result.has_input
        assert result.missing_scopes == [Scope.MACHINE, Scope.USER]
        assert result.matches == []
        assert len(result.required) == 0

    def test_report_settings_use_name_strategies(self, tmp_path, ctx):
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE])
        report = GpoReport(
            name="Browser Baseline",
            settings=[ConfiguredSetting("Configure the home page URL", "Enabled", scope=Scope.MACHINE)],
        )

        result = analyze_gpo(ctx, gpo_dir, report=report)

        assert result.gpo_name == "Browser Baseline"
        [match] = result.matches
        assert match.strategy == MatchStrategy.DISPLAY_NAME
        assert match.policy_name == "HomepageLocation"

    def test_extra_entries_without_folder(self, ctx):
        result = analyze_gpo(ctx, None, extra_entries=[entry(CHROME_KEY, "HomepageLocation")])
        assert result.gpo_path == ""
        assert [m.policy_name for m in result.matches] == ["HomepageLocation"]

    def test_missing_admx_store(self, tmp_path):
        ctx = MigrationContext(admx_store=tmp_path / "missing")
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE])
        with pytest.raises(FileNotFoundError):
            analyze_gpo(ctx, gpo_dir)

    def test_matches_logged_as_jsonl(self, tmp_path, ctx, monkeypatch):
        matches_file = tmp_path / "matches.jsonl"
        monkeypatch.setattr(gpotools_logging, "MATCHES_FILE", str(matches_file))
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE])

        gpotools_logging.init_logging()
        try:
            analyze_gpo(ctx, gpo_dir)
        finally:
            gpotools_logging.close_logging()

        records = [json.loads(line) for line in matches_file.read_text().splitlines()]
        assert len(records) == 1
        assert list(records[0])[0] == "ts"
        assert records[0]["policy"] == "HomepageLocation"
        assert records[0]["strategy"] == "RegistryKeyValue"
        assert records[0]["entry"]["scope"] == "Machine"


class TestCopyRequiredFiles:
    """Copying templates to another store."""

    def test_copies_admx_and_adml(self, tmp_path, ctx):
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE])
        result = analyze_gpo(ctx, gpo_dir)
        dest = tmp_path / "central"

        copied = copy_required_files(result.required, ctx, dest)

        assert sorted(p.relative_to(dest).as_posix() for p in copied) == [
            "chrome.admx",
            "en-US/chrome.adml",
        ]
        assert (dest / "chrome.admx").read_bytes() == (ctx.admx_store / "chrome.admx").read_bytes()

    def test_missing_adml_not_copied(self, tmp_path, ctx):
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE])
        ctx.language = "de-DE"
        result = analyze_gpo(ctx, gpo_dir)
        dest = tmp_path / "central"

        copied = copy_required_files(result.required, ctx, dest)

        assert [p.name for p in copied] == ["chrome.admx"]
        assert not (dest / "de-DE").exists()


class TestReportToDict:
    """Plain-data report shape."""

    def test_shape(self, tmp_path, ctx):
        gpo_dir = write_gpo(tmp_path, machine=[HOMEPAGE])
        data = report_to_dict(analyze_gpo(ctx, gpo_dir))

        assert data["version"] == REPORT_VERSION
        assert data["entries"] == {"Machine": 1, "User": 0}
        assert data["missing_scopes"] == ["User"]
        assert data["language"] == "en-US"
        assert data["required_files"] == [
            {"admx_file": "chrome.admx", "adml_file": "chrome.adml", "adml_status": "Available"}
        ]
        [match] = data["matches"]
        assert match["entry"] == {
            "scope": "Machine",
            "key": CHROME_KEY,
            "value_name": "HomepageLocation",
            "type": REG_SZ,
            "data": "https://example.com",
        }
        json.dumps(data)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
