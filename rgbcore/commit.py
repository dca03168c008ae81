"""Tagged commitment engine.

All 32-byte identifiers in rgbcore come from one hash primitive applied under a
per-class domain tag, so that byte-identical payloads committed for different
purposes never collide.

Construction (v1):

    tag_hash = SHA256(tag)
    id       = SHA256(tag_hash || tag_hash || payload)

The tag is hashed once and fed twice, which fills exactly one SHA-256 block and
allows the midstate to be reused per tag. Changing this construction or any tag
string changes every derived identifier, hence the version suffix on each tag.
"""

from __future__ import annotations

import hashlib
import re
from functools import lru_cache
from typing import Type, TypeVar, Union

from rgbcore.errors import MalformedEncoding

TAG_RE = re.compile(r"^[a-z0-9][a-z0-9.-]{0,127}$")

TAG_SEMID = "rgbcore.semid.v1"
TAG_SCHEMA = "rgbcore.schema.v1"
TAG_OPERATION = "rgbcore.operation.v1"
TAG_BUNDLE = "rgbcore.bundle.v1"
TAG_CONSIGNMENT = "rgbcore.consignment.v1"
TAG_DISCLOSURE = "rgbcore.disclosure.v1"
TAG_LIBRARY = "rgbcore.library.v1"
TAG_SECRET_SEAL = "rgbcore.secret-seal.v1"

ALL_TAGS = (
    TAG_SEMID,
    TAG_SCHEMA,
    TAG_OPERATION,
    TAG_BUNDLE,
    TAG_CONSIGNMENT,
    TAG_DISCLOSURE,
    TAG_LIBRARY,
    TAG_SECRET_SEAL,
)


@lru_cache(maxsize=64)
def _tag_midstate(tag: str) -> "hashlib._Hash":
    if not isinstance(tag, str) or not TAG_RE.match(tag):
        raise MalformedEncoding(f"invalid commitment tag {tag!r}", "tag")
    tag_hash = hashlib.sha256(tag.encode("ascii")).digest()
    h = hashlib.sha256()
    h.update(tag_hash + tag_hash)
    return h


def commit(payload: Union[bytes, bytearray, memoryview], tag: str) -> bytes:
    """Compute the 32-byte tagged commitment of ``payload`` under ``tag``."""
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise MalformedEncoding(
            f"commitment payload must be bytes, got {type(payload).__name__}", "payload"
        )
    h = _tag_midstate(tag).copy()
    h.update(bytes(payload))
    return h.digest()


def sha256d(data: bytes) -> bytes:
    """Bitcoin double SHA-256."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


# =============================================================================
# IDENTIFIER CLASSES
# =============================================================================

IdT = TypeVar("IdT", bound="Id32")


class Id32(bytes):
    """32-byte identifier. Subclasses name the identifier class."""

    TAG: str = ""

    def __new__(cls, value: Union[bytes, bytearray, memoryview]) -> "Id32":
        raw = bytes(value)
        if len(raw) != 32:
            raise MalformedEncoding(
                f"{cls.__name__} must be 32 bytes, got {len(raw)}", cls.__name__
            )
        return super().__new__(cls, raw)

    @classmethod
    def commit(cls: Type[IdT], payload: bytes) -> IdT:
        """Derive this identifier class from a canonical payload."""
        return cls(commit(payload, cls.TAG))

    @classmethod
    def from_hex(cls: Type[IdT], value: str) -> IdT:
        try:
            raw = bytes.fromhex(value.strip())
        except ValueError as ex:
            raise MalformedEncoding(f"invalid hex: {ex}", cls.__name__) from ex
        return cls(raw)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.hex()})"

    def __str__(self) -> str:
        return self.hex()


class SemId(Id32):
    TAG = TAG_SEMID


class SchemaId(Id32):
    TAG = TAG_SCHEMA


class OpId(Id32):
    TAG = TAG_OPERATION


class ContractId(Id32):
    """Contract id: the operation id of the contract genesis."""
    TAG = TAG_OPERATION


class BundleId(Id32):
    TAG = TAG_BUNDLE


class ConsignmentId(Id32):
    TAG = TAG_CONSIGNMENT


class DiscloseHash(Id32):
    TAG = TAG_DISCLOSURE


class LibId(Id32):
    TAG = TAG_LIBRARY


class SecretSeal(Id32):
    TAG = TAG_SECRET_SEAL


class Txid(Id32):
    """Bitcoin transaction id. Displayed byte-reversed, as bitcoin does."""

    @classmethod
    def from_raw_tx(cls, raw_tx: bytes) -> "Txid":
        return cls(sha256d(raw_tx))

    @classmethod
    def from_hex(cls, value: str) -> "Txid":
        try:
            raw = bytes.fromhex(value.strip())
        except ValueError as ex:
            raise MalformedEncoding(f"invalid hex: {ex}", cls.__name__) from ex
        return cls(raw[::-1])

    def __str__(self) -> str:
        return bytes(reversed(self)).hex()

    def __repr__(self) -> str:
        return f"Txid({self})"
