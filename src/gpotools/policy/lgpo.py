"""LGPO text parser - converts `LGPO.exe /parse` output to registry entries.

Uses parsimonious for PEG parsing. Each record is four lines separated from
the next by a blank line; lines starting with ';' are comments:

    Computer
    Software\\Policies\\Microsoft\\Windows\\WindowsUpdate\\AU
    NoAutoUpdate
    DWORD:0

Deletion records (DELETE, DELETEALLVALUES, ...) carry no value and yield
no entry.
"""

import logging

from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from ..exceptions import LgpoParseError
from .types import (
    REG_BINARY,
    REG_DWORD,
    REG_EXPAND_SZ,
    REG_MULTI_SZ,
    REG_QWORD,
    REG_SZ,
    RegistryPolicyEntry,
    Scope,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PEG Grammar (one record)
# =============================================================================

GRAMMAR = Grammar(r"""
record          = scope_line newline key_line newline value_line newline action
scope_line      = ws* scope ws*
scope           = "Computer" / "User"
key_line        = ~"[^\r\n]+"
value_line      = ~"[^\r\n]+"

action          = typed_value / bare_action
typed_value     = value_type ":" value_data
value_type      = "EXPAND_SZ" / "MULTISZ" / "BINARY" / "DWORD" / "QWORD" / "SZ"
value_data      = ~"[^\r\n]*"
bare_action     = ("DELETEALLVALUES" / "DELETEKEYS" / "DELETE" / "CREATEKEY") ws*

newline         = "\r\n" / "\n"
ws              = " " / "\t"
""")

LGPO_TYPES = {
    "SZ": REG_SZ,
    "EXPAND_SZ": REG_EXPAND_SZ,
    "BINARY": REG_BINARY,
    "DWORD": REG_DWORD,
    "MULTISZ": REG_MULTI_SZ,
    "QWORD": REG_QWORD,
}


def _parse_number(text: str) -> int:
    text = text.strip()
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    except ValueError:
        raise LgpoParseError(f"invalid numeric value {text!r}") from None


# =============================================================================
# AST Visitor - transforms parse tree to a RegistryPolicyEntry
# =============================================================================


class LgpoVisitor(NodeVisitor):
    """Visits one record's parse tree and builds an entry (or None)."""

    unwrapped_exceptions = (LgpoParseError,)

    def visit_record(self, node, visited_children):
        # scope_line newline key_line newline value_line newline action
        scope, _, key, _, value_name, _, action = visited_children
        if action is None:
            return None
        value_type, value_data = action
        return RegistryPolicyEntry(
            registry_key=key.strip(),
            value_name=value_name.strip(),
            value_type=value_type,
            value_data=value_data,
            scope=scope,
        )

    def visit_scope_line(self, node, visited_children):
        _, scope, _ = visited_children
        return scope

    def visit_scope(self, node, visited_children):
        return Scope.MACHINE if node.text == "Computer" else Scope.USER

    def visit_key_line(self, node, visited_children):
        return node.text

    def visit_value_line(self, node, visited_children):
        return node.text

    def visit_action(self, node, visited_children):
        return visited_children[0]

    def visit_typed_value(self, node, visited_children):
        value_type, _, data = visited_children
        if value_type in (REG_DWORD, REG_QWORD):
            return value_type, _parse_number(data)
        return value_type, data.rstrip()

    def visit_value_type(self, node, visited_children):
        return LGPO_TYPES[node.text]

    def visit_value_data(self, node, visited_children):
        return node.text

    def visit_bare_action(self, node, visited_children):
        return None

    def generic_visit(self, node, visited_children):
        return visited_children or node


# =============================================================================
# Public API
# =============================================================================


def _records(text: str):
    """Yield (first_line_number, record_text) for each record in text."""
    block: list[str] = []
    start = 0
    for line_num, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if stripped.startswith(";"):
            continue
        if not stripped:
            if block:
                yield start, "\n".join(block)
                block = []
            continue
        if not block:
            start = line_num
        block.append(line.rstrip())
    if block:
        yield start, "\n".join(block)


def parse_lgpo_record(record: str) -> RegistryPolicyEntry | None:
    """Parse one record. Returns None for deletion records.

    Raises ParseError for malformed records and LgpoParseError for
    unreadable numeric data.
    """
    return LgpoVisitor().visit(GRAMMAR.parse(record))


def parse_lgpo_text(text: str) -> list[RegistryPolicyEntry]:
    """Parse LGPO text output into registry entries.

    Invalid records are skipped (lenient parsing); entries with an empty
    key or value name are dropped.
    """
    entries: list[RegistryPolicyEntry] = []
    for line_num, record in _records(text):
        try:
            entry = parse_lgpo_record(record)
        except (ParseError, LgpoParseError) as e:
            logger.debug("Skipping LGPO record at line %d: %s", line_num, e)
            continue
        if entry is not None and entry.is_valid:
            entries.append(entry)
    return entries


def validate_lgpo_text(text: str) -> list[tuple[int, str, str]]:
    """Return (line_num, first_line, error) for every invalid record."""
    errors = []
    for line_num, record in _records(text):
        try:
            parse_lgpo_record(record)
        except (ParseError, LgpoParseError) as e:
            errors.append((line_num, record.splitlines()[0].strip(), str(e)))
    return errors
