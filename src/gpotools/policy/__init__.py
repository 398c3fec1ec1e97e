"""Registry policy decoding and ADMX matching engine."""

from .admx import AdmlStrings, iter_admx_files, load_admx_file
from .defaults import DEFAULT_ADMX_STORE, DEFAULT_LANGUAGE, get_defaults, load_context
from .lgpo import parse_lgpo_text, validate_lgpo_text
from .matcher import (
    AdmxPolicyMatcher,
    dedupe_matches,
    match_admx,
    match_policy,
    required_files,
)
from .migrate import (
    MigrationReport,
    analyze_gpo,
    collect_entries,
    copy_required_files,
    report_to_dict,
)
from .polfile import decode_pol, encode_pol, read_pol_file
from .report import GpoReport, load_gpo_report, parse_gpo_report
from .sysvol import find_gpo_by_name, find_policy_files, gpo_folder, normalize_gpo_guid
from .types import (
    AdmxMatch,
    AdmxPolicyDefinition,
    ConfiguredSetting,
    FileStatus,
    MatchStrategy,
    MigrationContext,
    RegistryPolicyEntry,
    RequiredFile,
    RequiredFileSet,
    ScanSummary,
    Scope,
)

__all__ = [
    # Types
    "RegistryPolicyEntry",
    "AdmxPolicyDefinition",
    "ConfiguredSetting",
    "AdmxMatch",
    "RequiredFile",
    "RequiredFileSet",
    "ScanSummary",
    "MigrationContext",
    "Scope",
    "MatchStrategy",
    "FileStatus",
    # Defaults / config
    "DEFAULT_ADMX_STORE",
    "DEFAULT_LANGUAGE",
    "get_defaults",
    "load_context",
    # Decoders
    "decode_pol",
    "encode_pol",
    "read_pol_file",
    "parse_lgpo_text",
    "validate_lgpo_text",
    # ADMX / reports
    "AdmlStrings",
    "iter_admx_files",
    "load_admx_file",
    "GpoReport",
    "parse_gpo_report",
    "load_gpo_report",
    # Matcher
    "AdmxPolicyMatcher",
    "match_admx",
    "match_policy",
    "dedupe_matches",
    "required_files",
    # SYSVOL
    "normalize_gpo_guid",
    "gpo_folder",
    "find_policy_files",
    "find_gpo_by_name",
    # Pipeline
    "MigrationReport",
    "analyze_gpo",
    "collect_entries",
    "copy_required_files",
    "report_to_dict",
]
