"""GPO-to-ADMX migration pipeline.

Ties the pieces together for one GPO: decode both registry.pol scopes,
match against the ADMX store named in the MigrationContext, and derive the
template files the GPO needs. Per-file problems are logged and skipped so
the operator always gets a report with counts.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .. import logging as gpotools_logging
from ..exceptions import PolFormatError
from ..utils import find_child
from .matcher import AdmxPolicyMatcher, ProgressCallback, required_files
from .polfile import read_pol_file
from .report import GpoReport
from .sysvol import find_policy_files
from .types import (
    AdmxMatch,
    ConfiguredSetting,
    MigrationContext,
    RegistryPolicyEntry,
    RequiredFile,
    RequiredFileSet,
    ScanSummary,
    Scope,
)

logger = logging.getLogger(__name__)

# Bump when the shape of report_to_dict() changes
REPORT_VERSION = 1


@dataclass
class MigrationReport:
    """Everything learned about one GPO."""

    gpo_path: str = ""
    gpo_name: str = ""
    entries: dict[Scope, list[RegistryPolicyEntry]] = field(default_factory=dict)
    missing_scopes: list[Scope] = field(default_factory=list)
    failed_scopes: list[Scope] = field(default_factory=list)
    settings: list[ConfiguredSetting] = field(default_factory=list)
    matches: list[AdmxMatch] = field(default_factory=list)
    required: RequiredFileSet = field(default_factory=RequiredFileSet)
    summary: ScanSummary = field(default_factory=ScanSummary)

    @property
    def all_entries(self) -> list[RegistryPolicyEntry]:
        return [e for scope in Scope for e in self.entries.get(scope, [])]

    @property
    def has_input(self) -> bool:
        """True if there was anything to match (entries or report settings)."""
        return bool(self.all_entries or self.settings)


def collect_entries(
    gpo_dir: Path | str,
) -> tuple[dict[Scope, list[RegistryPolicyEntry]], list[Scope], list[Scope]]:
    """Decode the Machine and User registry.pol files of a GPO folder.

    A scope whose file is absent or fails to decode yields no entries;
    the other scope is still read.

    Returns:
        (entries by scope, scopes with no file, scopes whose file failed)
    """
    entries: dict[Scope, list[RegistryPolicyEntry]] = {}
    missing: list[Scope] = []
    failed: list[Scope] = []

    for scope, path in find_policy_files(gpo_dir).items():
        entries[scope] = []
        if path is None:
            missing.append(scope)
            continue
        try:
            entries[scope] = read_pol_file(path, scope)
        except (PolFormatError, OSError) as e:
            logger.warning("Skipping %s policy file %s: %s", scope.value, path, e)
            failed.append(scope)

    return entries, missing, failed


def analyze_gpo(
    ctx: MigrationContext,
    gpo_dir: Path | str | None,
    report: GpoReport | None = None,
    extra_entries: list[RegistryPolicyEntry] | None = None,
    progress: ProgressCallback | None = None,
) -> MigrationReport:
    """Work out which ADMX templates a GPO needs.

    Args:
        ctx: Session settings (ADMX store, language).
        gpo_dir: GPO folder holding Machine/ and User/, or None when the
            entries come only from extra_entries.
        report: Optional parsed GPO report; its settings enable the
            name-based match strategies.
        extra_entries: Entries from another source (e.g. LGPO text).
        progress: Called with (index, total, file_name) per ADMX file.

    Raises:
        FileNotFoundError: ctx.admx_store does not exist.
    """
    result = MigrationReport(gpo_path=str(gpo_dir) if gpo_dir else "")
    if gpo_dir is not None:
        result.entries, result.missing_scopes, result.failed_scopes = collect_entries(gpo_dir)
    else:
        result.entries = {scope: [] for scope in Scope}

    for entry in extra_entries or []:
        result.entries.setdefault(entry.scope, []).append(entry)

    if report is not None:
        result.gpo_name = report.name
        result.settings = list(report.settings)

    matcher = AdmxPolicyMatcher(ctx.admx_store, language=ctx.language, settings=result.settings)
    result.matches = matcher.match(result.all_entries, progress=progress)
    result.summary = matcher.summary
    result.required = required_files(result.matches, ctx.admx_store, ctx.language)

    for match in result.matches:
        gpotools_logging.log_match(gpo=result.gpo_path or result.gpo_name, **match_to_dict(match))

    return result


def copy_required_files(
    required: RequiredFileSet,
    ctx: MigrationContext,
    destination: Path | str,
) -> list[Path]:
    """Copy required ADMX files (and available ADML files) to another store.

    ADML files go to destination/<language>/. Returns the copied paths.
    """
    destination = Path(destination)
    language_dest = destination / ctx.language
    language_src = find_child(ctx.admx_store, ctx.language)
    copied = []

    for item in required.files:
        source = find_child(ctx.admx_store, item.admx_file)
        if source is None:
            logger.warning("ADMX file %s disappeared from %s", item.admx_file, ctx.admx_store)
            continue
        destination.mkdir(parents=True, exist_ok=True)
        copied.append(Path(shutil.copy2(source, destination / source.name)))

        adml = find_child(language_src, item.adml_file) if language_src else None
        if adml is None:
            continue
        language_dest.mkdir(parents=True, exist_ok=True)
        copied.append(Path(shutil.copy2(adml, language_dest / adml.name)))

    return copied


# =============================================================================
# Serialization
# =============================================================================


def entry_to_dict(entry: RegistryPolicyEntry) -> dict:
    return {
        "scope": entry.scope.value,
        "key": entry.registry_key,
        "value_name": entry.value_name,
        "type": entry.value_type,
        "data": entry.value_data,
    }


def match_to_dict(match: AdmxMatch) -> dict:
    result = {
        "admx_file": match.admx_file,
        "policy": match.policy_name,
        "strategy": match.strategy.value,
    }
    if match.entry is not None:
        result["entry"] = entry_to_dict(match.entry)
    if match.setting is not None:
        result["setting"] = {
            "name": match.setting.name,
            "state": match.setting.state,
            "category": match.setting.category,
            "scope": match.setting.scope.value if match.setting.scope else None,
        }
    return result


def required_file_to_dict(item: RequiredFile) -> dict:
    return {
        "admx_file": item.admx_file,
        "adml_file": item.adml_file,
        "adml_status": item.status.value,
    }


def report_to_dict(report: MigrationReport) -> dict:
    """Convert a MigrationReport to plain data for JSON/YAML output."""
    return {
        "version": REPORT_VERSION,
        "gpo": {"path": report.gpo_path, "name": report.gpo_name},
        "entries": {
            scope.value: len(report.entries.get(scope, [])) for scope in Scope
        },
        "missing_scopes": [s.value for s in report.missing_scopes],
        "failed_scopes": [s.value for s in report.failed_scopes],
        "summary": {
            "files_scanned": report.summary.files_scanned,
            "files_failed": list(report.summary.files_failed),
            "policies_scanned": report.summary.policies_scanned,
            "matches": report.summary.matches,
        },
        "language": report.required.language,
        "required_files": [required_file_to_dict(f) for f in report.required.files],
        "matches": [match_to_dict(m) for m in report.matches],
    }
