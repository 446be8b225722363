"""Decode raw Modbus words into signal values; pure functions, no I/O."""

from .errors import DecodeError
from .types import DecodeRule


def to_signed16(word: int) -> int:
    """Interpret a 16-bit register as two's complement."""
    if word > 32767:
        return word - 65536
    return word


def combine_u32(high: int, low: int) -> int:
    """Combine two 16-bit words into a 32-bit unsigned value, high word first."""
    return (high << 16) | low


def decode_words(rule: DecodeRule, words: list[int], signal: str | None = None) -> bool | int | float:
    """
    Decode words read for one binding.

    - bool: nonzero word -> True
    - int16: signed degrees, int16_tenths: signed / 10.0
    - uint16: single word, uint32: (words[0] << 16) | words[1]

    Raises DecodeError on a word-count mismatch or a word outside 0..65535.
    """
    if len(words) != rule.word_count:
        raise DecodeError(
            f"Rule {rule.value!r} needs {rule.word_count} word(s), got {len(words)}",
            signal=signal,
            words=list(words),
        )
    for w in words:
        if not 0 <= int(w) <= 0xFFFF:
            raise DecodeError(f"Register word out of range 0-65535: {w}", signal=signal, words=list(words))

    if rule is DecodeRule.BOOL:
        return words[0] != 0
    if rule is DecodeRule.INT16:
        return to_signed16(words[0])
    if rule is DecodeRule.INT16_TENTHS:
        return to_signed16(words[0]) / 10.0
    if rule is DecodeRule.UINT16:
        return int(words[0])
    if rule is DecodeRule.UINT32:
        return combine_u32(words[0], words[1])
    raise DecodeError(f"Unsupported decode rule: {rule!r}", signal=signal, words=list(words))
