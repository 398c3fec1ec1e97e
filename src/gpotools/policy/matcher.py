"""ADMX matching engine - ties GPO settings to ADMX policy definitions."""

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from ..exceptions import AdmxParseError
from ..utils import find_child, strip_namespace, strip_string_ref
from .admx import AdmlStrings, iter_admx_files, load_admx_file
from .types import (
    AdmxMatch,
    AdmxPolicyDefinition,
    ConfiguredSetting,
    FileStatus,
    MatchStrategy,
    RegistryPolicyEntry,
    RequiredFile,
    RequiredFileSet,
    ScanSummary,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


# =============================================================================
# Strategies (tried in this order; the first with a match wins per policy)
# =============================================================================


def match_direct_name(
    policy: AdmxPolicyDefinition, settings: list[ConfiguredSetting]
) -> list[ConfiguredSetting]:
    """Settings whose name equals the policy's internal name."""
    name = policy.name.lower()
    if not name:
        return []
    return [s for s in settings if s.name.lower() == name]


def match_namespace_stripped_name(
    policy: AdmxPolicyDefinition, settings: list[ConfiguredSetting]
) -> list[ConfiguredSetting]:
    """Like match_direct_name, with any 'prefix:' removed from the policy name."""
    name = strip_namespace(policy.name).lower()
    if not name:
        return []
    return [s for s in settings if s.name.lower() == name]


def display_names(policy: AdmxPolicyDefinition) -> list[str]:
    """Candidate display names: the unwrapped string ref, then the ADML text."""
    names = []
    ref = strip_string_ref(policy.display_name_ref)
    if ref:
        names.append(ref.lower())
    if policy.display_name:
        resolved = policy.display_name.strip().lower()
        if resolved and resolved not in names:
            names.append(resolved)
    return names


def names_similar(a: str, b: str) -> bool:
    """Exact match or substring containment in either direction."""
    if not a or not b:
        return False
    return a == b or a in b or b in a


def match_display_name(
    policy: AdmxPolicyDefinition, settings: list[ConfiguredSetting]
) -> list[ConfiguredSetting]:
    """Settings whose name is similar to the policy's display name."""
    candidates = display_names(policy)
    if not candidates:
        return []
    matched = []
    for setting in settings:
        setting_name = setting.name.strip().lower()
        if any(names_similar(c, setting_name) for c in candidates):
            matched.append(setting)
    return matched


def match_registry_key_value(
    policy: AdmxPolicyDefinition, entries: list[RegistryPolicyEntry]
) -> list[RegistryPolicyEntry]:
    """Entries whose key AND value name equal one of the policy's registry pairs.

    Key-only or value-only matches are never accepted.
    """
    pairs = {(k.lower(), v.lower()) for k, v in policy.registry_values()}
    if not pairs:
        return []
    return [
        e
        for e in entries
        if (e.registry_key.lower(), e.value_name.lower()) in pairs
    ]


SETTING_STRATEGIES = (
    (MatchStrategy.DIRECT_NAME, match_direct_name),
    (MatchStrategy.NAMESPACE_STRIPPED_NAME, match_namespace_stripped_name),
    (MatchStrategy.DISPLAY_NAME, match_display_name),
)


def match_policy(
    policy: AdmxPolicyDefinition,
    entries: list[RegistryPolicyEntry],
    settings: list[ConfiguredSetting] | None = None,
) -> list[AdmxMatch]:
    """Match one policy definition using the first strategy that succeeds.

    Name-based strategies run against report settings (when given) before
    the registry key/value fallback. Strategies are not cumulative: once
    one yields a match, later ones are not tried for this policy.
    """
    if settings:
        for strategy, func in SETTING_STRATEGIES:
            matched = func(policy, settings)
            if matched:
                return [
                    AdmxMatch(
                        admx_file=policy.admx_file,
                        policy_name=policy.name,
                        strategy=strategy,
                        setting=s,
                    )
                    for s in matched
                ]

    return [
        AdmxMatch(
            admx_file=policy.admx_file,
            policy_name=policy.name,
            strategy=MatchStrategy.REGISTRY_KEY_VALUE,
            entry=e,
        )
        for e in match_registry_key_value(policy, entries)
    ]


def dedupe_matches(matches: Iterable[AdmxMatch]) -> list[AdmxMatch]:
    """Drop repeated (admx_file, policy_name, entry, setting) matches.

    The first occurrence is kept, so order is stable.
    """
    seen = set()
    result = []
    for match in matches:
        if match.key in seen:
            continue
        seen.add(match.key)
        result.append(match)
    return result


# =============================================================================
# Matcher
# =============================================================================


class AdmxPolicyMatcher:
    """Matches registry entries and report settings against an ADMX directory."""

    def __init__(
        self,
        admx_directory: Path | str,
        language: str | None = None,
        settings: list[ConfiguredSetting] | None = None,
    ):
        """Initialize with a policy definitions directory.

        Args:
            admx_directory: Directory holding .admx files.
            language: Optional ADML language folder (e.g. "en-US") used to
                resolve display names for the DisplayName strategy.
            settings: Optional configured settings from a GPO report.

        Raises:
            FileNotFoundError: admx_directory does not exist.
        """
        self.admx_directory = Path(admx_directory)
        if not self.admx_directory.is_dir():
            raise FileNotFoundError(
                f"ADMX directory '{self.admx_directory}' was not found."
            )
        self.settings = list(settings or [])
        self.strings = AdmlStrings(self.admx_directory, language) if language else None
        self.summary = ScanSummary()

    def load_policies(self, path: Path) -> list[AdmxPolicyDefinition]:
        return load_admx_file(path, self.strings)

    def match(
        self,
        entries: Iterable[RegistryPolicyEntry],
        progress: ProgressCallback | None = None,
    ) -> list[AdmxMatch]:
        """Scan every ADMX file and return de-duplicated matches.

        Files are processed in name order and policies in document order.
        A file that fails to parse is logged, counted in summary.files_failed
        and skipped.
        """
        entries = list(entries)
        self.summary = ScanSummary()
        files = iter_admx_files(self.admx_directory)
        matches: list[AdmxMatch] = []

        for index, path in enumerate(files, start=1):
            if progress is not None:
                progress(index, len(files), path.name)
            try:
                policies = self.load_policies(path)
            except AdmxParseError as e:
                logger.warning("Skipping %s", e)
                self.summary.files_failed.append(path.name)
                continue

            self.summary.files_scanned += 1
            self.summary.policies_scanned += len(policies)
            file_matches = 0
            for policy in policies:
                found = match_policy(policy, entries, self.settings)
                file_matches += len(found)
                matches.extend(found)
            if file_matches:
                logger.debug("%s: %d match(es)", path.name, file_matches)

        matches = dedupe_matches(matches)
        self.summary.matches = len(matches)
        logger.info(
            "Scanned %d ADMX file(s) (%d failed): %d match(es)",
            self.summary.files_scanned,
            len(self.summary.files_failed),
            self.summary.matches,
        )
        return matches


def match_admx(
    entries: Iterable[RegistryPolicyEntry],
    admx_directory: Path | str,
    settings: list[ConfiguredSetting] | None = None,
) -> list[AdmxMatch]:
    """Convenience wrapper: match entries against an ADMX directory."""
    return AdmxPolicyMatcher(admx_directory, settings=settings).match(entries)


# =============================================================================
# Required files
# =============================================================================


def adml_name(admx_file: str) -> str:
    """chrome.admx -> chrome.adml"""
    return f"{Path(admx_file).stem}.adml"


def required_files(
    matches: Iterable[AdmxMatch],
    admx_directory: Path | str,
    language: str,
) -> RequiredFileSet:
    """Derive the ADMX files (and ADML companions) a set of matches needs.

    An ADML is Available when admx_directory/<language>/<name>.adml exists
    (names compared case-insensitively), otherwise Missing.
    """
    admx_directory = Path(admx_directory)
    names: dict[str, str] = {}
    for match in matches:
        names.setdefault(match.admx_file.lower(), match.admx_file)

    language_dir = find_child(admx_directory, language) if admx_directory.is_dir() else None

    files = []
    for lowered in sorted(names):
        admx_file = names[lowered]
        adml_file = adml_name(admx_file)
        present = language_dir is not None and find_child(language_dir, adml_file) is not None
        files.append(
            RequiredFile(
                admx_file=admx_file,
                adml_file=adml_file,
                status=FileStatus.AVAILABLE if present else FileStatus.MISSING,
            )
        )
    return RequiredFileSet(files=files, language=language)
