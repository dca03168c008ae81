"""Primitive and bounded-collection strict codec.

The codec is table-driven: every encodable type is described by a descriptor
object (a ``StrictType``) and values are encoded by walking the descriptor.
This module holds the leaf descriptors:

- fixed-width integers (little-endian, unsigned and signed)
- bool, unit and single Unicode scalars
- fixed-size byte arrays
- length-prefixed byte strings and ASCII strings with charset classes
- bounded lists, sets and maps

Canonical form rules:
- Length prefixes use the smallest unsigned width covering the declared
  maximum (8/16/24/32-bit tiers).
- Sets and maps are written in ascending order of the element (key) encoding
  and must be strictly ascending when read back. A decoder that accepted any
  permutation would let two byte strings denote the same value.
- A buffer decodes only if it is consumed exactly.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from rgbcore.errors import (
    CardinalityViolation,
    DuplicateKey,
    IntegerOverflow,
    InvalidCharset,
    LengthOutOfRange,
    MalformedEncoding,
    OrderingViolation,
    StrictError,
)


# =============================================================================
# BYTE STREAMS
# =============================================================================

class Reader:
    """Cursor over an immutable byte buffer."""

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self.pos = 0

    def read(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self._data):
            raise MalformedEncoding(
                f"unexpected end of data at offset {self.pos} (needed {n} bytes, "
                f"{len(self._data) - self.pos} left)"
            )
        chunk = self._data[self.pos:end]
        self.pos = end
        return chunk

    def read_byte(self) -> int:
        return self.read(1)[0]

    def slice(self, start: int, end: int) -> bytes:
        return self._data[start:end]

    def remaining(self) -> int:
        return len(self._data) - self.pos

    def finish(self) -> None:
        left = self.remaining()
        if left:
            raise MalformedEncoding(f"{left} trailing bytes after offset {self.pos}")


class Writer:
    """Append-only output buffer."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def write(self, data: bytes) -> None:
        self._buf += data

    def write_byte(self, value: int) -> None:
        self._buf.append(value)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


# =============================================================================
# DESCRIPTOR BASE
# =============================================================================

class StrictType:
    """Descriptor of a strictly encodable type."""

    name: str = ""

    def write(self, w: Writer, value: Any) -> None:
        raise NotImplementedError

    def read(self, r: Reader) -> Any:
        raise NotImplementedError

    @property
    def discriminated(self) -> bool:
        """True when decoded values carry their own Python class identity."""
        return False

    def accepts(self, value: Any) -> bool:
        """Whether ``value`` is an instance of this descriptor's Python class."""
        return False

    def encode(self, value: Any) -> bytes:
        w = Writer()
        self.write(w, value)
        return w.getvalue()

    def decode(self, data: bytes) -> Any:
        r = Reader(data)
        value = self.read(r)
        r.finish()
        return value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def encode(ty: StrictType, value: Any) -> bytes:
    """Canonical encoding of ``value`` as type ``ty``."""
    return ty.encode(value)


def decode(ty: StrictType, data: bytes) -> Any:
    """Decode ``data`` as type ``ty``; the whole buffer must be consumed."""
    return ty.decode(data)


def prefix_width(max_len: int) -> int:
    """Byte width of the length prefix for a declared maximum."""
    if max_len < 0:
        raise ValueError("maximum length must be non-negative")
    if max_len <= 0xFF:
        return 1
    if max_len <= 0xFFFF:
        return 2
    if max_len <= 0xFFFFFF:
        return 3
    if max_len <= 0xFFFFFFFF:
        return 4
    raise ValueError(f"maximum length {max_len} exceeds the 32-bit prefix tier")


def _check_bounds(min_len: int, max_len: int) -> int:
    if min_len < 0 or min_len > max_len:
        raise ValueError(f"invalid bounds [{min_len}, {max_len}]")
    return prefix_width(max_len)


def _write_len(w: Writer, width: int, n: int) -> None:
    w.write(n.to_bytes(width, "little"))


def _read_len(r: Reader, width: int) -> int:
    return int.from_bytes(r.read(width), "little")


def _require_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedEncoding(f"expected integer, got {type(value).__name__}")
    return value


def _require_bytes(value: Any) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise MalformedEncoding(f"expected bytes, got {type(value).__name__}")
    return bytes(value)


# =============================================================================
# SCALARS
# =============================================================================

class UInt(StrictType):
    """Unsigned little-endian integer of a fixed bit width."""

    WIDTHS = (8, 16, 24, 32, 64, 128, 256)

    def __init__(self, bits: int):
        if bits not in self.WIDTHS:
            raise ValueError(f"unsupported unsigned width {bits}")
        self.bits = bits
        self.size = bits // 8
        self.max = (1 << bits) - 1
        self.name = f"U{bits}"

    def write(self, w: Writer, value: Any) -> None:
        v = _require_int(value)
        if v < 0 or v > self.max:
            raise IntegerOverflow(f"{v} does not fit {self.name}")
        w.write(v.to_bytes(self.size, "little"))

    def read(self, r: Reader) -> int:
        return int.from_bytes(r.read(self.size), "little")


class SInt(StrictType):
    """Signed two's-complement little-endian integer."""

    WIDTHS = (8, 16, 32, 64)

    def __init__(self, bits: int):
        if bits not in self.WIDTHS:
            raise ValueError(f"unsupported signed width {bits}")
        self.bits = bits
        self.size = bits // 8
        self.min = -(1 << (bits - 1))
        self.max = (1 << (bits - 1)) - 1
        self.name = f"I{bits}"

    def write(self, w: Writer, value: Any) -> None:
        v = _require_int(value)
        if v < self.min or v > self.max:
            raise IntegerOverflow(f"{v} does not fit {self.name}")
        w.write(v.to_bytes(self.size, "little", signed=True))

    def read(self, r: Reader) -> int:
        return int.from_bytes(r.read(self.size), "little", signed=True)


class BoolType(StrictType):
    name = "Bool"

    def write(self, w: Writer, value: Any) -> None:
        if not isinstance(value, bool):
            raise MalformedEncoding(f"expected bool, got {type(value).__name__}")
        w.write_byte(1 if value else 0)

    def read(self, r: Reader) -> bool:
        b = r.read_byte()
        if b > 1:
            raise MalformedEncoding(f"invalid bool byte {b:#04x}")
        return b == 1


class UnitType(StrictType):
    """Zero-sized type; the only value is ``None``."""

    name = "Unit"

    def write(self, w: Writer, value: Any) -> None:
        if value is not None:
            raise MalformedEncoding(f"unit type holds no value, got {value!r}")

    def read(self, r: Reader) -> None:
        return None


class UnicodeChar(StrictType):
    """One Unicode scalar value as a 4-byte little-endian code point."""

    name = "Unicode"

    def write(self, w: Writer, value: Any) -> None:
        if not isinstance(value, str) or len(value) != 1:
            raise MalformedEncoding(f"expected a single character, got {value!r}")
        w.write(ord(value).to_bytes(4, "little"))

    def read(self, r: Reader) -> str:
        cp = int.from_bytes(r.read(4), "little")
        if cp > 0x10FFFF or 0xD800 <= cp <= 0xDFFF:
            raise MalformedEncoding(f"invalid unicode scalar {cp:#x}")
        return chr(cp)


U8 = UInt(8)
U16 = UInt(16)
U24 = UInt(24)
U32 = UInt(32)
U64 = UInt(64)
U128 = UInt(128)
U256 = UInt(256)
I8 = SInt(8)
I16 = SInt(16)
I32 = SInt(32)
I64 = SInt(64)
BOOL = BoolType()
UNIT = UnitType()
UNICODE = UnicodeChar()


# =============================================================================
# BYTES AND STRINGS
# =============================================================================

class ByteArray(StrictType):
    """Fixed-size byte array, written without a length prefix."""

    def __init__(self, size: int, factory: Callable[[bytes], Any] = bytes, name: str = ""):
        if size < 1:
            raise ValueError("byte array size must be positive")
        self.size = size
        self.factory = factory
        if name:
            self.name = name
        elif factory is bytes:
            self.name = f"Bytes{size}"
        else:
            self.name = getattr(factory, "__name__", "ByteArray")

    @property
    def discriminated(self) -> bool:
        return self.factory is not bytes

    def accepts(self, value: Any) -> bool:
        return self.discriminated and isinstance(value, self.factory)

    def write(self, w: Writer, value: Any) -> None:
        raw = _require_bytes(value)
        if len(raw) != self.size:
            raise LengthOutOfRange(f"expected exactly {self.size} bytes, got {len(raw)}")
        w.write(raw)

    def read(self, r: Reader) -> Any:
        return self.factory(r.read(self.size))


class Bytes(StrictType):
    """Length-prefixed byte string with inclusive length bounds."""

    def __init__(self, min_len: int = 0, max_len: int = 0xFFFF, name: str = ""):
        self.width = _check_bounds(min_len, max_len)
        self.min_len = min_len
        self.max_len = max_len
        self.name = name or f"Bytes[{min_len}..{max_len}]"

    def _check(self, n: int) -> None:
        if n < self.min_len or n > self.max_len:
            raise LengthOutOfRange(
                f"byte length {n} outside [{self.min_len}, {self.max_len}]"
            )

    def write(self, w: Writer, value: Any) -> None:
        raw = _require_bytes(value)
        self._check(len(raw))
        _write_len(w, self.width, len(raw))
        w.write(raw)

    def read(self, r: Reader) -> bytes:
        n = _read_len(r, self.width)
        self._check(n)
        return r.read(n)


class Charset:
    """Named class of permitted ASCII characters."""

    def __init__(self, name: str, chars: Iterable[str]):
        self.name = name
        self.chars: FrozenSet[str] = frozenset(chars)

    def __contains__(self, ch: str) -> bool:
        return ch in self.chars

    def __repr__(self) -> str:
        return f"Charset({self.name})"


_LOWER = "abcdefghijklmnopqrstuvwxyz"
_UPPER = _LOWER.upper()
_DIGITS = "0123456789"

ALPHA = Charset("Alpha", _LOWER + _UPPER)
ALPHA_CAPS = Charset("AlphaCaps", _UPPER)
ALPHA_SMALL = Charset("AlphaSmall", _LOWER)
ALPHA_NUM = Charset("AlphaNum", _LOWER + _UPPER + _DIGITS)
ALPHA_CAPS_NUM = Charset("AlphaCapsNum", _UPPER + _DIGITS)
ALPHA_LODASH = Charset("AlphaLodash", _LOWER + _UPPER + "_")
ALPHA_NUM_LODASH = Charset("AlphaNumLodash", _LOWER + _UPPER + _DIGITS + "_")
ALPHA_NUM_DASH = Charset("AlphaNumDash", _LOWER + _UPPER + _DIGITS + "-")
PRINTABLE = Charset("Printable", (chr(c) for c in range(0x20, 0x7F)))

CHARSETS: Dict[str, Charset] = {cs.name: cs for cs in (
    ALPHA, ALPHA_CAPS, ALPHA_SMALL, ALPHA_NUM, ALPHA_CAPS_NUM,
    ALPHA_LODASH, ALPHA_NUM_LODASH, ALPHA_NUM_DASH, PRINTABLE,
)}


class AsciiString(StrictType):
    """ASCII string with a charset for the first and the remaining characters.

    When both classes are the same the string is a length-prefixed run of
    bytes. When they differ the first character is written alone and the
    length prefix counts the remaining characters only, so such strings are
    never empty.
    """

    def __init__(
        self,
        first: Charset,
        rest: Charset,
        min_len: int = 1,
        max_len: int = 0xFF,
        name: str = "",
    ):
        self.split = first.chars != rest.chars
        if self.split:
            if min_len < 1:
                raise ValueError(f"string with a distinct first charset needs min length >= 1, got {min_len}")
            self.width = _check_bounds(min_len - 1, max_len - 1)
        else:
            self.width = _check_bounds(min_len, max_len)
        self.first = first
        self.rest = rest
        self.min_len = min_len
        self.max_len = max_len
        self.name = name or f"Ascii[{first.name},{rest.name}]"

    def _check_len(self, n: int) -> None:
        if n < self.min_len or n > self.max_len:
            raise LengthOutOfRange(f"string length {n} outside [{self.min_len}, {self.max_len}]")

    def validate(self, value: str) -> None:
        self._check_len(len(value))
        for i, ch in enumerate(value):
            charset = self.first if i == 0 else self.rest
            if ch not in charset:
                raise InvalidCharset(
                    f"character {ch!r} at position {i} is not in charset {charset.name}"
                )

    def write(self, w: Writer, value: Any) -> None:
        if not isinstance(value, str):
            raise MalformedEncoding(f"expected str, got {type(value).__name__}")
        self.validate(value)
        raw = value.encode("ascii")
        if self.split:
            w.write(raw[:1])
            _write_len(w, self.width, len(raw) - 1)
            w.write(raw[1:])
        else:
            _write_len(w, self.width, len(raw))
            w.write(raw)

    def read(self, r: Reader) -> str:
        if self.split:
            head = r.read(1)
            n = _read_len(r, self.width) + 1
        else:
            head = b""
            n = _read_len(r, self.width)
        self._check_len(n)
        raw = head + r.read(n - len(head))
        try:
            value = raw.decode("ascii")
        except UnicodeDecodeError as ex:
            raise InvalidCharset(f"non-ascii byte at position {ex.start}") from ex
        self.validate(value)
        return value


# =============================================================================
# BOUNDED COLLECTIONS
# =============================================================================

def _key_label(key: Any) -> str:
    if isinstance(key, (bytes, bytearray)):
        return bytes(key).hex()[:16]
    return str(key)


class _Bounded(StrictType):
    def __init__(self, min_len: int, max_len: int):
        self.width = _check_bounds(min_len, max_len)
        self.min_len = min_len
        self.max_len = max_len

    def _check(self, n: int) -> None:
        if n < self.min_len or n > self.max_len:
            raise CardinalityViolation(
                f"{n} items outside [{self.min_len}, {self.max_len}]"
            )


class ListOf(_Bounded):
    """Bounded ordered list. Decodes into a tuple."""

    def __init__(self, item: StrictType, min_len: int = 0, max_len: int = 0xFFFF, name: str = ""):
        super().__init__(min_len, max_len)
        self.item = item
        self.name = name or f"List<{item.name}>"

    def write(self, w: Writer, value: Any) -> None:
        items = list(value)
        self._check(len(items))
        _write_len(w, self.width, len(items))
        for i, v in enumerate(items):
            try:
                self.item.write(w, v)
            except StrictError as err:
                err.at(f"[{i}]")
                raise

    def read(self, r: Reader) -> Tuple[Any, ...]:
        n = _read_len(r, self.width)
        self._check(n)
        out: List[Any] = []
        for i in range(n):
            try:
                out.append(self.item.read(r))
            except StrictError as err:
                err.at(f"[{i}]")
                raise
        return tuple(out)


def _sorted_encoded(entries: List[Tuple[bytes, Any]]) -> List[Tuple[bytes, Any]]:
    entries.sort(key=lambda e: e[0])
    for prev, cur in zip(entries, entries[1:]):
        if prev[0] == cur[0]:
            raise DuplicateKey(f"duplicate entry {prev[0].hex()[:16]}")
    return entries


def _check_ascending(prev: Optional[bytes], cur: bytes, label: str) -> None:
    if prev is None:
        return
    if cur == prev:
        raise DuplicateKey(f"duplicate entry {label}")
    if cur < prev:
        raise OrderingViolation(f"entry {label} is out of canonical order")


class SetOf(_Bounded):
    """Bounded set, ordered by element encoding.

    Decodes into a frozenset; pass ``factory=tuple`` when elements may be
    unhashable.
    """

    def __init__(
        self,
        item: StrictType,
        min_len: int = 0,
        max_len: int = 0xFFFF,
        name: str = "",
        factory: Callable[[Iterable[Any]], Any] = frozenset,
    ):
        super().__init__(min_len, max_len)
        self.item = item
        self.factory = factory
        self.name = name or f"Set<{item.name}>"

    def write(self, w: Writer, value: Any) -> None:
        entries = []
        for v in value:
            try:
                entries.append((self.item.encode(v), v))
            except StrictError as err:
                err.at(f"[{_key_label(v)}]")
                raise
        entries = _sorted_encoded(entries)
        self._check(len(entries))
        _write_len(w, self.width, len(entries))
        for raw, _ in entries:
            w.write(raw)

    def read(self, r: Reader) -> FrozenSet[Any]:
        n = _read_len(r, self.width)
        self._check(n)
        out = []
        prev: Optional[bytes] = None
        for i in range(n):
            start = r.pos
            try:
                v = self.item.read(r)
                raw = r.slice(start, r.pos)
                _check_ascending(prev, raw, f"#{i}")
            except StrictError as err:
                err.at(f"[{i}]")
                raise
            prev = raw
            out.append(v)
        return self.factory(out)


class MapOf(_Bounded):
    """Bounded map, ordered by key encoding.

    Decodes into a dict. With ``factory=tuple`` it decodes into a tuple of
    ``(key, value)`` pairs instead, and accepts such pairs when encoding.
    """

    def __init__(
        self,
        key: StrictType,
        value: StrictType,
        min_len: int = 0,
        max_len: int = 0xFFFF,
        name: str = "",
        factory: Callable[[Iterable[Tuple[Any, Any]]], Any] = dict,
    ):
        super().__init__(min_len, max_len)
        self.key = key
        self.value = value
        self.factory = factory
        self.name = name or f"Map<{key.name},{value.name}>"

    def _pairs(self, value: Any) -> Iterable[Tuple[Any, Any]]:
        if isinstance(value, Mapping):
            return value.items()
        if self.factory is not dict and isinstance(value, (list, tuple)):
            return value
        raise MalformedEncoding(f"expected mapping, got {type(value).__name__}")

    def write(self, w: Writer, value: Any) -> None:
        entries = []
        for k, v in self._pairs(value):
            try:
                entries.append((self.key.encode(k), (k, v)))
            except StrictError as err:
                err.at(f"[{_key_label(k)}]")
                raise
        entries = _sorted_encoded(entries)
        self._check(len(entries))
        _write_len(w, self.width, len(entries))
        for raw, (k, v) in entries:
            w.write(raw)
            try:
                self.value.write(w, v)
            except StrictError as err:
                err.at(f"[{_key_label(k)}]")
                raise

    def read(self, r: Reader) -> Any:
        n = _read_len(r, self.width)
        self._check(n)
        out: List[Tuple[Any, Any]] = []
        prev: Optional[bytes] = None
        for i in range(n):
            start = r.pos
            try:
                k = self.key.read(r)
                raw = r.slice(start, r.pos)
                _check_ascending(prev, raw, _key_label(k))
            except StrictError as err:
                err.at(f"[{i}]")
                raise
            prev = raw
            try:
                out.append((k, self.value.read(r)))
            except StrictError as err:
                err.at(f"[{_key_label(k)}]")
                raise
        return self.factory(out)


class ArrayOf(StrictType):
    """Fixed-count array of a non-byte element type. Decodes into a tuple."""

    def __init__(self, item: StrictType, count: int, name: str = ""):
        if count < 1:
            raise ValueError("array length must be positive")
        self.item = item
        self.count = count
        self.name = name or f"[{item.name}; {count}]"

    def write(self, w: Writer, value: Any) -> None:
        items = list(value)
        if len(items) != self.count:
            raise LengthOutOfRange(f"expected exactly {self.count} items, got {len(items)}")
        for i, v in enumerate(items):
            try:
                self.item.write(w, v)
            except StrictError as err:
                err.at(f"[{i}]")
                raise

    def read(self, r: Reader) -> Tuple[Any, ...]:
        out = []
        for i in range(self.count):
            try:
                out.append(self.item.read(r))
            except StrictError as err:
                err.at(f"[{i}]")
                raise
        return tuple(out)
