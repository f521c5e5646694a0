from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from pathlib import Path

import chardet

logger = logging.getLogger(__name__)

FALLBACK_ENCODINGS = ("utf-8", "gb18030", "big5")
CONFIDENT_GUESS = 0.7
# chardet tends to report the narrow GB charsets; GB18030 decodes a superset.
_WIDENED_ENCODINGS = {
    "gb2312": "gb18030",
    "gbk": "gb18030",
    "ascii": "utf-8",
}


class DecodeError(ValueError):
    """Raised when a text file cannot be decoded with any supported encoding."""


@dataclass
class DecodedText:
    text: str
    encoding: str


def _normalize_encoding(name: str) -> str | None:
    lowered = name.strip().lower()
    lowered = _WIDENED_ENCODINGS.get(lowered, lowered)
    try:
        return codecs.lookup(lowered).name
    except LookupError:
        return None


def _candidate_encodings(raw: bytes) -> list[str]:
    ordered = list(FALLBACK_ENCODINGS)
    detected = chardet.detect(raw)
    guess = detected.get("encoding")
    if isinstance(guess, str):
        confidence = detected.get("confidence") or 0.0
        # Strict UTF-8 is always tried first; a confident guess goes next,
        # a weak one only after the CJK fallbacks.
        ordered.insert(1 if confidence >= CONFIDENT_GUESS else len(ordered), guess)
    candidates: list[str] = []
    for name in ordered:
        normalized = _normalize_encoding(name)
        if normalized and normalized not in candidates:
            candidates.append(normalized)
    return candidates


def decode_bytes(raw: bytes, encoding: str | None = None) -> DecodedText:
    """
    Decode ``raw`` using ``encoding`` or, when omitted, a detected encoding.

    A declared encoding is used strictly. Detection honours a UTF-8 BOM, then
    tries :data:`FALLBACK_ENCODINGS` with the chardet guess slotted in by its
    confidence.
    """
    if encoding:
        normalized = _normalize_encoding(encoding)
        if normalized is None:
            raise DecodeError(f"Unsupported encoding: {encoding}")
        try:
            return DecodedText(raw.decode(normalized), normalized)
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Cannot decode text as {encoding}: {exc}") from exc
    if not raw:
        return DecodedText("", "utf-8")
    if raw.startswith(codecs.BOM_UTF8):
        try:
            return DecodedText(raw[len(codecs.BOM_UTF8) :].decode("utf-8"), "utf-8-sig")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Invalid UTF-8 after byte order mark: {exc}") from exc
    tried: list[str] = []
    for candidate in _candidate_encodings(raw):
        tried.append(candidate)
        try:
            text = raw.decode(candidate)
        except UnicodeDecodeError:
            continue
        logger.debug("Decoded %d bytes as %s", len(raw), candidate)
        return DecodedText(text, candidate)
    raise DecodeError(f"Unable to detect text encoding (tried: {', '.join(tried)})")


def read_text_file(path: Path, encoding: str | None = None) -> DecodedText:
    return decode_bytes(path.read_bytes(), encoding)


__all__ = ["DecodeError", "DecodedText", "decode_bytes", "read_text_file"]
