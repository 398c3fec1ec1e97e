"""Property-based tests for the registry.pol decoder.

Uses hypothesis to generate policy files, truncation points and junk input.
"""

import sys
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gpotools.exceptions import PolFormatError
from gpotools.policy.polfile import MIN_FILE_SIZE, decode_pol, encode_pol
from gpotools.policy.types import REG_DWORD, REG_SZ, Scope

# =============================================================================
# Strategies
# =============================================================================

# Registry names never contain NUL; the terminator would end them early
names = st.text(
    alphabet=st.characters(exclude_categories=("Cs",), exclude_characters="\x00"),
    min_size=1,
    max_size=60,
)
string_data = st.text(
    alphabet=st.characters(exclude_categories=("Cs",), exclude_characters="\x00"),
    max_size=200,
)

string_records = st.tuples(names, names, st.just(REG_SZ), string_data)
dword_records = st.tuples(names, names, st.just(REG_DWORD), st.integers(0, 2**32 - 1))
records = st.lists(st.one_of(string_records, dword_records), max_size=8)


def as_tuples(entries):
    return [(e.registry_key, e.value_name, e.value_type, e.value_data) for e in entries]


# =============================================================================
# Properties
# =============================================================================


class TestPolProperties:
    """Invariants that hold for any well-formed or truncated input."""

    @given(records, st.sampled_from(list(Scope)))
    @settings(max_examples=300)
    def test_round_trip(self, items, scope):
        """Encoded string and DWORD records decode to the same sequence."""
        entries = decode_pol(encode_pol(items), scope)
        assert as_tuples(entries) == items
        assert all(e.scope == scope for e in entries)

    @given(records, st.data())
    @settings(max_examples=300)
    def test_truncation_yields_prefix(self, items, data):
        """Any cut that keeps the header decodes to a prefix of the full result."""
        buf = encode_pol(items)
        full = decode_pol(buf, Scope.MACHINE)

        k = data.draw(st.integers(MIN_FILE_SIZE, len(buf)))
        partial = decode_pol(buf[:k], Scope.MACHINE)

        assert len(partial) <= len(full)
        assert partial == full[: len(partial)]

    @given(records, st.integers(0, MIN_FILE_SIZE - 1))
    @settings(max_examples=100)
    def test_short_prefix_rejected(self, items, k):
        with pytest.raises(PolFormatError):
            decode_pol(encode_pol(items)[:k], Scope.MACHINE)

    @given(st.binary(max_size=200))
    @settings(max_examples=500)
    def test_arbitrary_bytes_never_crash(self, blob):
        """Junk either decodes to something or raises PolFormatError."""
        try:
            entries = decode_pol(blob, Scope.USER)
        except PolFormatError:
            assert len(blob) < MIN_FILE_SIZE or not blob.startswith(b"PReg")
            return
        assert blob.startswith(b"PReg")
        assert all(e.registry_key and e.value_name for e in entries)

    @given(st.binary(max_size=200))
    @settings(max_examples=300)
    def test_signed_junk_never_raises(self, blob):
        """A correct header followed by junk never raises."""
        entries = decode_pol(b"PReg\x01\x00\x00\x00" + blob + b"\x00" * 8, Scope.MACHINE)
        assert isinstance(entries, list)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
