"""Composite strict types: structs, tuples, unions, enums and options.

Encoding rules:
- Struct: field encodings concatenated in declaration order. Field names are
  metadata and never reach the byte stream, so reordering fields changes the
  type.
- Union: one discriminant byte, then the payload of the selected variant.
  Tags are explicit and need not be contiguous.
- Enum: the discriminant byte alone.
- Option: presence byte 0/1, then the payload when present.

Two encoding conventions are expressed as flags on descriptors rather than at
call sites:
- ``Field(optional=True)`` wraps the field type in ``Option``.
- ``Struct(wrapped=True)`` declares a single-field newtype. Its values may be
  passed either as the wrapper object or as the bare inner value, and its
  derived type definition is the inner type's.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Sequence, Tuple, Type

from rgbcore.errors import MalformedEncoding, StrictError, UnknownTag
from rgbcore.strict.codec import Reader, StrictType, UnitType, Writer


class Option(StrictType):
    """Optional value with a presence byte.

    ``None`` stands for the absent value, so the inner type must not have
    ``None`` among its own values: options of options and of the unit type
    are rejected at declaration.
    """

    def __init__(self, inner: StrictType):
        if isinstance(inner, (Option, UnitType)):
            raise ValueError(f"Option cannot wrap {inner.name}: its None would be ambiguous")
        self.inner = inner
        self.name = f"Option<{inner.name}>"

    def write(self, w: Writer, value: Any) -> None:
        if value is None:
            w.write_byte(0)
            return
        w.write_byte(1)
        self.inner.write(w, value)

    def read(self, r: Reader) -> Any:
        flag = r.read_byte()
        if flag == 0:
            return None
        if flag != 1:
            raise MalformedEncoding(f"invalid presence byte {flag:#04x}")
        return self.inner.read(r)


@dataclass(frozen=True)
class Field:
    name: str
    type: StrictType
    optional: bool = False

    @property
    def codec(self) -> StrictType:
        return Option(self.type) if self.optional else self.type


class Struct(StrictType):
    """Record of named fields encoded in declaration order.

    ``factory`` builds decoded values from keyword arguments; without one the
    struct decodes into a plain dict. Encoding reads fields by attribute, or
    by key when given a mapping.
    """

    def __init__(
        self,
        name: str,
        fields: Sequence[Field],
        factory: Optional[Callable[..., Any]] = None,
        wrapped: bool = False,
    ):
        names = [f.name for f in fields]
        if len(set(names)) != len(names):
            raise ValueError(f"struct {name} has duplicate field names")
        if wrapped and len(fields) != 1:
            raise ValueError(f"wrapped struct {name} must have exactly one field")
        self.name = name
        self.fields: Tuple[Field, ...] = tuple(fields)
        self.factory = factory
        self.wrapped = wrapped
        self._codecs = [(f.name, f.codec) for f in self.fields]

    @property
    def discriminated(self) -> bool:
        return isinstance(self.factory, type)

    def accepts(self, value: Any) -> bool:
        return self.discriminated and isinstance(value, self.factory)

    def _get(self, value: Any, name: str) -> Any:
        if isinstance(value, Mapping):
            if name not in value:
                raise MalformedEncoding(f"missing field '{name}'")
            return value[name]
        try:
            return getattr(value, name)
        except AttributeError:
            raise MalformedEncoding(
                f"{type(value).__name__} has no field '{name}'"
            ) from None

    def write(self, w: Writer, value: Any) -> None:
        if self.wrapped and not self.accepts(value):
            name, codec = self._codecs[0]
            try:
                codec.write(w, value)
            except StrictError as err:
                err.at(name)
                raise
            return
        for name, codec in self._codecs:
            try:
                codec.write(w, self._get(value, name))
            except StrictError as err:
                err.at(name)
                raise

    def read(self, r: Reader) -> Any:
        kwargs: Dict[str, Any] = {}
        for name, codec in self._codecs:
            try:
                kwargs[name] = codec.read(r)
            except StrictError as err:
                err.at(name)
                raise
        if self.factory is None:
            if self.wrapped:
                return kwargs[self.fields[0].name]
            return kwargs
        return self.factory(**kwargs)


class TupleOf(StrictType):
    """Positional record. Decodes into a tuple."""

    def __init__(self, items: Sequence[StrictType], name: str = ""):
        self.items: Tuple[StrictType, ...] = tuple(items)
        self.name = name or "(" + ", ".join(t.name for t in self.items) + ")"

    def write(self, w: Writer, value: Any) -> None:
        values = list(value)
        if len(values) != len(self.items):
            raise MalformedEncoding(f"expected {len(self.items)} tuple items, got {len(values)}")
        for i, (ty, v) in enumerate(zip(self.items, values)):
            try:
                ty.write(w, v)
            except StrictError as err:
                err.at(f"[{i}]")
                raise

    def read(self, r: Reader) -> Tuple[Any, ...]:
        out = []
        for i, ty in enumerate(self.items):
            try:
                out.append(ty.read(r))
            except StrictError as err:
                err.at(f"[{i}]")
                raise
        return tuple(out)


class Tagged(NamedTuple):
    """Union value whose payload does not identify its own variant."""
    name: str
    value: Any = None


@dataclass(frozen=True)
class Variant:
    name: str
    type: StrictType


class Union(StrictType):
    """Tagged union.

    Variants whose type is ``discriminated`` are selected by the Python class
    of the value and decode to that class directly. Other variants are passed
    and returned as ``Tagged(name, value)``.
    """

    def __init__(self, name: str, variants: Mapping[int, Variant]):
        if not variants:
            raise ValueError(f"union {name} has no variants")
        names = [v.name for v in variants.values()]
        if len(set(names)) != len(names):
            raise ValueError(f"union {name} has duplicate variant names")
        for tag in variants:
            if not 0 <= tag <= 0xFF:
                raise ValueError(f"union {name} tag {tag} does not fit a byte")
        self.name = name
        self.variants: Dict[int, Variant] = dict(sorted(variants.items()))
        self._by_name = {v.name: (tag, v) for tag, v in self.variants.items()}

    def _select(self, value: Any) -> Tuple[int, Variant, Any]:
        if isinstance(value, Tagged):
            if value.name not in self._by_name:
                raise UnknownTag(f"union {self.name} has no variant '{value.name}'")
            tag, variant = self._by_name[value.name]
            return tag, variant, value.value
        for tag, variant in self.variants.items():
            if variant.type.discriminated and variant.type.accepts(value):
                return tag, variant, value
        raise MalformedEncoding(
            f"{type(value).__name__} matches no variant of union {self.name}"
        )

    def write(self, w: Writer, value: Any) -> None:
        tag, variant, payload = self._select(value)
        w.write_byte(tag)
        try:
            variant.type.write(w, payload)
        except StrictError as err:
            err.at(variant.name)
            raise

    def read(self, r: Reader) -> Any:
        tag = r.read_byte()
        variant = self.variants.get(tag)
        if variant is None:
            raise UnknownTag(f"unknown tag {tag:#04x} for union {self.name}")
        try:
            payload = variant.type.read(r)
        except StrictError as err:
            err.at(variant.name)
            raise
        if variant.type.discriminated:
            return payload
        return Tagged(variant.name, payload)


class Enum(StrictType):
    """Fieldless enumeration backed by an ``IntEnum``."""

    def __init__(self, enum_cls: Type[IntEnum], name: str = ""):
        for member in enum_cls:
            if not 0 <= member.value <= 0xFF:
                raise ValueError(f"enum {enum_cls.__name__} tag {member.value} does not fit a byte")
        self.enum_cls = enum_cls
        self.name = name or enum_cls.__name__

    @property
    def discriminated(self) -> bool:
        return True

    def accepts(self, value: Any) -> bool:
        return isinstance(value, self.enum_cls)

    def write(self, w: Writer, value: Any) -> None:
        try:
            member = self.enum_cls(value)
        except ValueError:
            raise UnknownTag(f"{value!r} is not a variant of enum {self.name}") from None
        w.write_byte(int(member))

    def read(self, r: Reader) -> IntEnum:
        tag = r.read_byte()
        try:
            return self.enum_cls(tag)
        except ValueError:
            raise UnknownTag(f"unknown tag {tag:#04x} for enum {self.name}") from None


def variants(**named: Tuple[int, StrictType]) -> Dict[int, Variant]:
    """Build a union variant table from ``name=(tag, type)`` keywords."""
    return {tag: Variant(name, ty) for name, (tag, ty) in named.items()}

