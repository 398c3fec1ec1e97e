"""ADMX/ADML loading - extracts policy definitions from template files.

Element lookups ignore XML namespaces: vendor templates are not consistent
about the PolicyDefinitions namespace URI.
"""

import logging
import re
from pathlib import Path
from xml.etree import ElementTree as et

from ..exceptions import AdmxParseError
from ..utils import find_child, local_name, parse_xml_bytes
from .types import AdmxPolicyDefinition

logger = logging.getLogger(__name__)

STRING_TOKEN = re.compile(r"\$\((?:string|String)\.(?P<id>[^)]+)\)")

# Element types inside <elements> that write a registry value
VALUE_ELEMENTS = ("boolean", "decimal", "longDecimal", "enum", "text", "multiText", "list")


# =============================================================================
# XML helpers
# =============================================================================


def _parse_xml(path: Path) -> et.Element:
    """Parse an XML file, tolerating a wrong encoding declaration.

    Some shipped templates declare encoding="unicode", which expat rejects.
    """
    return parse_xml_bytes(path.read_bytes())


def _children(node: et.Element, name: str) -> list[et.Element]:
    return [child for child in node if local_name(child.tag) == name]


def _child(node: et.Element, name: str) -> et.Element | None:
    for child in node:
        if local_name(child.tag) == name:
            return child
    return None


# =============================================================================
# ADML string tables
# =============================================================================


def load_adml_strings(path: Path) -> dict[str, str]:
    """Load the <stringTable> of an ADML file as {id: text}."""
    try:
        root = _parse_xml(path)
    except (et.ParseError, LookupError, OSError) as e:
        logger.warning("Unable to parse %s: %s", path.name, e)
        return {}

    strings = {}
    for node in root.iter():
        if local_name(node.tag) != "string":
            continue
        string_id = node.get("id")
        if string_id:
            strings[string_id] = (node.text or "").strip()
    return strings


class AdmlStrings:
    """Lazily loaded ADML string tables for one language folder."""

    def __init__(self, directory: Path, language: str):
        self.directory = Path(directory)
        self.language = language
        self._tables: dict[str, dict[str, str]] = {}

    def adml_path(self, admx_base_name: str) -> Path | None:
        language_dir = find_child(self.directory, self.language)
        if language_dir is None:
            return None
        return find_child(language_dir, f"{admx_base_name}.adml")

    def table(self, admx_base_name: str) -> dict[str, str]:
        cache_key = admx_base_name.lower()
        if cache_key not in self._tables:
            path = self.adml_path(admx_base_name)
            self._tables[cache_key] = load_adml_strings(path) if path else {}
        return self._tables[cache_key]

    def resolve(self, ref: str, admx_base_name: str) -> str | None:
        """Replace $(string.ID) tokens in ref.

        Returns None if any token has no entry in the string table.
        """
        if not ref:
            return None
        table = self.table(admx_base_name)
        unresolved = False

        def replace(match: re.Match) -> str:
            nonlocal unresolved
            text = table.get(match.group("id"))
            if text is None:
                unresolved = True
                return match.group(0)
            return text

        resolved = STRING_TOKEN.sub(replace, ref)
        return None if unresolved else resolved


# =============================================================================
# ADMX policy definitions
# =============================================================================


def iter_admx_files(directory: Path) -> list[Path]:
    """List .admx files in a directory, sorted by name."""
    directory = Path(directory)
    files = [
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".admx"
    ]
    return sorted(files, key=lambda p: p.name.lower())


def _element_values(policy: et.Element, policy_key: str | None) -> list[tuple[str, str]]:
    """Collect (key, valueName) pairs declared by a policy's <elements>."""
    elements = _child(policy, "elements")
    if elements is None:
        return []

    pairs = []
    for element in elements:
        if local_name(element.tag) not in VALUE_ELEMENTS:
            continue
        key = element.get("key") or policy_key
        value_name = element.get("valueName")
        if key and value_name:
            pairs.append((key, value_name))
    return pairs


def parse_policy_element(
    policy: et.Element,
    admx_file: str,
    strings: AdmlStrings | None = None,
) -> AdmxPolicyDefinition:
    """Build an AdmxPolicyDefinition from a <policy> element."""
    key = policy.get("key")
    display_name_ref = policy.get("displayName", "")
    display_name = None
    if strings is not None:
        display_name = strings.resolve(display_name_ref, Path(admx_file).stem)

    return AdmxPolicyDefinition(
        admx_file=admx_file,
        name=policy.get("name", ""),
        display_name_ref=display_name_ref,
        registry_key=key,
        value_name=policy.get("valueName"),
        policy_class=policy.get("class", ""),
        element_values=_element_values(policy, key),
        display_name=display_name,
    )


def load_admx_file(
    path: Path,
    strings: AdmlStrings | None = None,
) -> list[AdmxPolicyDefinition]:
    """Extract every <policy> definition from an ADMX file, in document order.

    Raises:
        AdmxParseError: The file is not well-formed XML, uses an
            unsupported encoding or cannot be read.
    """
    path = Path(path)
    try:
        root = _parse_xml(path)
    except et.ParseError as e:
        raise AdmxParseError(path.name, str(e)) from e
    except LookupError as e:
        raise AdmxParseError(path.name, f"unsupported encoding: {e}") from e
    except OSError as e:
        raise AdmxParseError(path.name, f"unreadable: {e}") from e

    policies_node = _child(root, "policies")
    if policies_node is None:
        return []

    return [
        parse_policy_element(policy, path.name, strings)
        for policy in _children(policies_node, "policy")
    ]
