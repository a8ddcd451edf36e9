"""Decoding of BCS-encoded constant pool entries."""

from __future__ import annotations

from typing import Any, Tuple

from ..exceptions import LoadError
from .types import PrimitiveType, Type, VectorType

ADDRESS_LENGTH = 32

__all__ = ["ADDRESS_LENGTH", "read_uleb128", "decode_constant"]


def read_uleb128(data: bytes, offset: int) -> Tuple[int, int]:
    """Return ``(value, new_offset)`` for the ULEB128 integer at ``offset``."""

    value = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise LoadError("truncated ULEB128 length")
        byte = data[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset
        shift += 7
        if shift > 63:
            raise LoadError("ULEB128 length overflows u64")


def _read_uint(data: bytes, offset: int, size: int) -> Tuple[int, int]:
    end = offset + size
    if end > len(data):
        raise LoadError(f"constant truncated: need {size} bytes at offset {offset}")
    return int.from_bytes(data[offset:end], "little", signed=False), end


def _decode(ty: Type, data: bytes, offset: int) -> Tuple[Any, int]:
    if isinstance(ty, PrimitiveType):
        if ty.is_integer:
            return _read_uint(data, offset, ty.bits // 8)
        if ty.name == "bool":
            value, offset = _read_uint(data, offset, 1)
            if value > 1:
                raise LoadError(f"invalid bool byte {value:#x}")
            return bool(value), offset
        if ty.name == "address":
            return _read_uint_be(data, offset, ADDRESS_LENGTH)
        raise LoadError(f"type {ty.name} cannot appear in a constant")
    if isinstance(ty, VectorType):
        length, offset = read_uleb128(data, offset)
        items = []
        for _ in range(length):
            item, offset = _decode(ty.element, data, offset)
            items.append(item)
        return items, offset
    raise LoadError(f"type {ty!r} cannot appear in a constant")


def _read_uint_be(data: bytes, offset: int, size: int) -> Tuple[int, int]:
    # Addresses are stored as raw big-endian account bytes.
    end = offset + size
    if end > len(data):
        raise LoadError(f"constant truncated: need {size} address bytes")
    return int.from_bytes(data[offset:end], "big", signed=False), end


def decode_constant(ty: Type, data: bytes) -> Any:
    """Decode ``data`` as a value of ``ty``.

    Integers become ``int``, ``bool`` becomes ``bool``, addresses become their
    integer value and vectors become lists.  Trailing bytes are rejected.
    """

    value, offset = _decode(ty, data, 0)
    if offset != len(data):
        raise LoadError(f"{len(data) - offset} trailing bytes after constant")
    return value
