"""GPO XML report reader - extracts configured Administrative Template settings.

Reads the XML produced by `Get-GPOReport -ReportType Xml`. Registry-based
settings appear under Computer/ExtensionData/Extension/Policy and
User/ExtensionData/Extension/Policy; the extension elements carry
per-report namespace prefixes (q1:, q2:, ...), so lookups use local names.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from xml.etree import ElementTree as et

from ..exceptions import ReportParseError
from ..utils import local_name, parse_xml_bytes
from .types import ConfiguredSetting, Scope

logger = logging.getLogger(__name__)

SECTION_SCOPES = {"Computer": Scope.MACHINE, "User": Scope.USER}


@dataclass
class GpoReport:
    """The parts of a GPO report used for ADMX matching."""

    name: str = ""
    guid: str = ""
    settings: list[ConfiguredSetting] = field(default_factory=list)


def _child_text(node: et.Element, name: str) -> str:
    for child in node:
        if local_name(child.tag) == name:
            return (child.text or "").strip()
    return ""


def _read_guid(root: et.Element) -> str:
    # <Identifier><Identifier>{GUID}</Identifier><Domain>..</Domain></Identifier>
    for child in root:
        if local_name(child.tag) != "Identifier":
            continue
        inner = _child_text(child, "Identifier")
        return inner or (child.text or "").strip()
    return ""


def _section_settings(section: et.Element, scope: Scope) -> list[ConfiguredSetting]:
    settings = []
    for node in section.iter():
        if local_name(node.tag) != "Policy":
            continue
        name = _child_text(node, "Name")
        if not name:
            continue
        settings.append(
            ConfiguredSetting(
                name=name,
                state=_child_text(node, "State"),
                category=_child_text(node, "Category"),
                scope=scope,
            )
        )
    return settings


def parse_gpo_report(data: bytes | str) -> GpoReport:
    """Parse a GPO XML report.

    Reports saved by PowerShell redirection are often UTF-8 text that still
    declares encoding="utf-16"; those are re-read with a UTF-8 declaration.

    Raises:
        ReportParseError: The document is not well-formed XML.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    try:
        root = parse_xml_bytes(data)
    except (et.ParseError, LookupError) as e:
        raise ReportParseError(f"invalid GPO report: {e}") from e

    report = GpoReport(name=_child_text(root, "Name"), guid=_read_guid(root))
    for section in root:
        scope = SECTION_SCOPES.get(local_name(section.tag))
        if scope is None:
            continue
        report.settings.extend(_section_settings(section, scope))

    logger.debug(
        "GPO report %r: %d configured settings", report.name, len(report.settings)
    )
    return report


def load_gpo_report(path: Path | str) -> GpoReport:
    """Read and parse a GPO XML report file."""
    return parse_gpo_report(Path(path).read_bytes())
