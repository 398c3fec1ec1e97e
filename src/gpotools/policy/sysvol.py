"""SYSVOL layout helpers - locating GPO folders and their registry.pol files.

A GPO's files live under

    <SYSVOL>/<domain>/Policies/{<GPO-GUID>}/<Machine|User>/registry.pol

Folder and file names are matched case-insensitively so that copies of
SYSVOL on case-sensitive filesystems (Registry.pol, MACHINE, ...) work.
"""

import configparser
import logging
import re
from pathlib import Path

from ..utils import find_child
from .types import Scope

logger = logging.getLogger(__name__)

GUID_PATTERN = re.compile(
    r"^\{?([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})\}?$"
)
POLICY_FILE_NAME = "registry.pol"


def normalize_gpo_guid(value: str) -> str:
    """Return a GPO GUID in SYSVOL folder form: {UPPERCASE-GUID}.

    Raises ValueError if value is not a GUID (with or without braces).
    """
    match = GUID_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Not a GPO GUID: {value!r}")
    return "{" + match.group(1).upper() + "}"


def policies_folder(sysvol_root: Path | str, domain: str) -> Path:
    """<SYSVOL>/<domain>/Policies"""
    return Path(sysvol_root) / domain / "Policies"


def gpo_folder(sysvol_root: Path | str, domain: str, guid: str) -> Path:
    """<SYSVOL>/<domain>/Policies/{GUID}"""
    return policies_folder(sysvol_root, domain) / normalize_gpo_guid(guid)


def policy_file_path(gpo_dir: Path | str, scope: Scope) -> Path:
    """Expected registry.pol path for a scope (not probed)."""
    return Path(gpo_dir) / scope.value / POLICY_FILE_NAME


def find_policy_files(gpo_dir: Path | str) -> dict[Scope, Path | None]:
    """Probe a GPO folder for its Machine and User registry.pol files.

    Returns a mapping with both scopes; absent files map to None.
    """
    gpo_dir = Path(gpo_dir)
    found: dict[Scope, Path | None] = {}
    for scope in Scope:
        scope_dir = find_child(gpo_dir, scope.value)
        path = find_child(scope_dir, POLICY_FILE_NAME) if scope_dir else None
        found[scope] = path if path is not None and path.is_file() else None
        if found[scope] is None:
            logger.debug("No %s registry.pol under %s", scope.value, gpo_dir)
    return found


def read_gpt_display_name(gpo_dir: Path | str) -> str | None:
    """Read displayName from a GPO folder's GPT.INI, if recorded there."""
    gpt_ini = find_child(Path(gpo_dir), "GPT.INI")
    if gpt_ini is None or not gpt_ini.is_file():
        return None

    parser = configparser.ConfigParser(interpolation=None, strict=False)
    try:
        parser.read_string(gpt_ini.read_bytes().decode("utf-8-sig", errors="replace"))
    except configparser.Error as e:
        logger.warning("Unable to read %s: %s", gpt_ini, e)
        return None

    for section in parser.sections():
        name = parser.get(section, "displayname", fallback=None)
        if name:
            return name.strip()
    return None


def find_gpo_by_name(policies_dir: Path | str, display_name: str) -> Path | None:
    """Find a GPO folder under a Policies directory by its GPT.INI display name.

    Comparison is case-insensitive. Returns None if no folder matches.
    """
    policies_dir = Path(policies_dir)
    if not policies_dir.is_dir():
        return None

    wanted = display_name.strip().lower()
    for candidate in sorted(policies_dir.iterdir()):
        if not candidate.is_dir() or not GUID_PATTERN.match(candidate.name):
            continue
        name = read_gpt_display_name(candidate)
        if name and name.lower() == wanted:
            return candidate
    return None
