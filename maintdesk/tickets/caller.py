"""Turn raw caller-id strings from the phone system into a name and number.

The formats seen in practice are matched by an ordered list of small
matchers; the first one that recognises the string wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

UNKNOWN_CALLER = "Unknown"

_AREA_CODE_RE = re.compile(r"^(.+?),?\s*\(([0-9]{3})\)\s*([0-9\-]+)$")
_DIGITS_RE = re.compile(r"[0-9]+")


@dataclass(slots=True, frozen=True)
class CallerIdentity:
    name: str
    phone: str | None = None


def title_case(name: str) -> str:
    return " ".join(token.capitalize() for token in name.lower().split())


def _is_number(token: str) -> bool:
    return _DIGITS_RE.fullmatch(token) is not None


def _identity(name: str, phone: str | None) -> CallerIdentity:
    return CallerIdentity(name=title_case(name) or UNKNOWN_CALLER, phone=phone)


def match_area_code(text: str) -> CallerIdentity | None:
    """``"Name, (786) 651-6455"`` or ``"Name (786) 651-6455"``."""

    match = _AREA_CODE_RE.match(text)
    if match is None:
        return None
    name = match.group(1).strip().rstrip(",").strip()
    phone = match.group(2) + re.sub(r"[^0-9]", "", match.group(3))
    return _identity(name, phone)


def match_phone_name_phone(text: str) -> CallerIdentity | None:
    """``"5638 Esteban Ulloa 5638"``: extension repeated around the name."""

    parts = text.split()
    if len(parts) < 3 or parts[0] != parts[-1] or not _is_number(parts[0]):
        return None
    return _identity(" ".join(parts[1:-1]), parts[0])


def match_leading_phone(text: str) -> CallerIdentity | None:
    parts = text.split()
    if not parts or not _is_number(parts[0]):
        return None
    return _identity(" ".join(parts[1:]), parts[0])


def match_name_only(text: str) -> CallerIdentity:
    return _identity(text, None)


CALLER_MATCHERS: tuple[Callable[[str], CallerIdentity | None], ...] = (
    match_area_code,
    match_phone_name_phone,
    match_leading_phone,
    match_name_only,
)


def parse_caller(text: str | None) -> CallerIdentity:
    cleaned = (text or "").strip()
    for matcher in CALLER_MATCHERS:
        identity = matcher(cleaned)
        if identity is not None:
            return identity
    return CallerIdentity(name=UNKNOWN_CALLER)
