"""Utility functions."""

import codecs
import re
from pathlib import Path
from xml.etree import ElementTree as et

STRING_REF = re.compile(r"^\$\((?:string|String)\.(?P<id>[^)]*)\)$")
DECLARED_ENCODING = re.compile(r"""(<\?xml[^>]*?\bencoding\s*=\s*)(['"])[^'"]*\2""")


def local_name(tag: str) -> str:
    """Strip an ElementTree '{namespace}' qualifier from a tag."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[-1]
    return tag


def strip_namespace(name: str) -> str:
    """Remove a 'prefix:' qualifier (e.g. 'windows:Foo' -> 'Foo')."""
    return name.split(":", 1)[1] if ":" in name else name


def strip_string_ref(ref: str) -> str:
    """Unwrap an ADMX '$(string.ID)' reference to its ID.

    Plain text is returned unchanged.
    """
    match = STRING_REF.match(ref.strip())
    if match:
        return match.group("id")
    return ref.strip()


def find_child(directory: Path, name: str) -> Path | None:
    """Find an entry in a directory by case-insensitive name.

    SYSVOL and PolicyDefinitions copies on case-sensitive filesystems
    often differ in case (Registry.pol, EN-US, ...).
    """
    exact = directory / name
    if exact.exists():
        return exact
    if not directory.is_dir():
        return None
    wanted = name.lower()
    for child in sorted(directory.iterdir()):
        if child.name.lower() == wanted:
            return child
    return None


def _sniff_encoding(raw: bytes) -> str:
    # the declaration cannot be trusted here, so look at the bytes
    if raw.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return "utf-16"
    if raw[:2] == b"<\x00":
        return "utf-16-le"
    if raw[:2] == b"\x00<":
        return "utf-16-be"
    return "utf-8-sig"


def normalize_xml_encoding(raw: bytes) -> bytes | None:
    """Re-encode an XML document as UTF-8 with a matching declaration.

    Handles declarations expat rejects (encoding="unicode") and ones that
    disagree with the actual bytes (UTF-8 text declaring utf-16). Returns
    None if there is nothing to rewrite.
    """
    try:
        text = raw.decode(_sniff_encoding(raw))
    except UnicodeDecodeError:
        return None
    fixed = DECLARED_ENCODING.sub(r"\1\2utf-8\2", text, count=1).encode("utf-8")
    if fixed == raw:
        return None
    return fixed


def parse_xml_bytes(raw: bytes) -> et.Element:
    """Parse an XML document, retrying once with a normalized declaration.

    Raises:
        xml.etree.ElementTree.ParseError: Not well-formed after the retry.
        LookupError: The declared encoding is unknown and cannot be fixed.
    """
    try:
        return et.fromstring(raw)
    except (LookupError, et.ParseError):
        fixed = normalize_xml_encoding(raw)
        if fixed is None:
            raise
        return et.fromstring(fixed)
