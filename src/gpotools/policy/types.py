"""Registry policy and ADMX match types and data structures."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# Registry value types as stored in registry.pol
REG_NONE = 0
REG_SZ = 1
REG_EXPAND_SZ = 2
REG_BINARY = 3
REG_DWORD = 4
REG_MULTI_SZ = 7
REG_QWORD = 11

# Stored in place of data the decoder does not interpret
BINARY_PLACEHOLDER = "<binary data>"


class Scope(Enum):
    """Which policy file (and registry hive) an entry came from."""

    MACHINE = "Machine"
    USER = "User"


class MatchStrategy(Enum):
    """How an ADMX policy was tied to a GPO setting, in precedence order."""

    DIRECT_NAME = "DirectName"
    NAMESPACE_STRIPPED_NAME = "NamespaceStrippedName"
    DISPLAY_NAME = "DisplayName"
    REGISTRY_KEY_VALUE = "RegistryKeyValue"


class FileStatus(Enum):
    """Whether an ADML companion file exists in the language folder."""

    AVAILABLE = "Available"
    MISSING = "Missing"


@dataclass(frozen=True)
class RegistryPolicyEntry:
    """One decoded record from a registry.pol file."""

    registry_key: str
    value_name: str
    value_type: int
    value_data: str | int | None
    scope: Scope

    @property
    def is_valid(self) -> bool:
        return bool(self.registry_key) and bool(self.value_name)


@dataclass(frozen=True)
class ConfiguredSetting:
    """An Administrative Template setting listed in a GPO report."""

    name: str
    state: str = ""
    category: str = ""
    scope: Scope | None = None


@dataclass
class AdmxPolicyDefinition:
    """A <policy> element extracted from an ADMX file."""

    admx_file: str
    name: str
    display_name_ref: str = ""
    registry_key: str | None = None
    value_name: str | None = None
    policy_class: str = ""
    element_values: list[tuple[str, str]] = field(default_factory=list)
    display_name: str | None = None  # ADML-resolved, when available

    def registry_values(self) -> list[tuple[str, str]]:
        """Return the (key, valueName) pairs this policy writes.

        The policy-level pair comes first, followed by pairs declared by
        its elements. Duplicates (case-insensitive) are dropped.
        """
        pairs = []
        if self.registry_key and self.value_name:
            pairs.append((self.registry_key, self.value_name))
        pairs.extend(self.element_values)

        seen = set()
        result = []
        for key, value_name in pairs:
            ident = (key.lower(), value_name.lower())
            if ident in seen:
                continue
            seen.add(ident)
            result.append((key, value_name))
        return result


@dataclass(frozen=True)
class AdmxMatch:
    """A policy definition tied to a registry entry or a report setting."""

    admx_file: str
    policy_name: str
    strategy: MatchStrategy
    entry: RegistryPolicyEntry | None = None
    setting: ConfiguredSetting | None = None

    @property
    def key(self) -> tuple:
        """Identity used for de-duplication."""
        return (self.admx_file, self.policy_name, self.entry, self.setting)


@dataclass
class RequiredFile:
    """An ADMX file required by a GPO, with its ADML companion."""

    admx_file: str
    adml_file: str
    status: FileStatus


@dataclass
class RequiredFileSet:
    """The set of template files needed to reproduce a GPO."""

    files: list[RequiredFile] = field(default_factory=list)
    language: str = ""

    @property
    def admx_files(self) -> list[str]:
        return [f.admx_file for f in self.files]

    @property
    def available(self) -> list[RequiredFile]:
        return [f for f in self.files if f.status == FileStatus.AVAILABLE]

    @property
    def missing(self) -> list[RequiredFile]:
        return [f for f in self.files if f.status == FileStatus.MISSING]

    def __len__(self) -> int:
        return len(self.files)


@dataclass
class ScanSummary:
    """Counters from one pass over an ADMX directory."""

    files_scanned: int = 0
    files_failed: list[str] = field(default_factory=list)
    policies_scanned: int = 0
    matches: int = 0


@dataclass
class MigrationContext:
    """Session settings shared by every step of a GPO analysis.

    One instance is built by the caller (CLI or script) and passed
    explicitly to the pipeline functions; nothing reads it from module state.
    """

    admx_store: Path
    language: str = "en-US"
    sysvol_root: Path | None = None
    domain: str | None = None
