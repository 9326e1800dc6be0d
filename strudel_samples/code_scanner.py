"""
Code scanner - find the sounds a pattern uses

A regex pass over pattern source, not a parser. It looks for
s("..."), sound("..."), .s("...") and .bank("...") calls and pulls the
sound names out of their mini-notation strings.
"""

import re
from dataclasses import dataclass, field
from typing import List, Set

# Quote characters: ' " `
_STRING = r"""["'`]([^"'`]+)["'`]"""

_SOUND_PATTERNS = [
    re.compile(r"\bs\s*\(\s*" + _STRING),
    re.compile(r"\.s\s*\(\s*" + _STRING),
    re.compile(r"\bsound\s*\(\s*" + _STRING),
    re.compile(r"\.sound\s*\(\s*" + _STRING),
]

# Near a bank() call only complete s("...") calls count
_BANK_SOUND_PATTERNS = [
    re.compile(r"\bs\s*\(\s*" + _STRING + r"\s*\)"),
    re.compile(r"\.s\s*\(\s*" + _STRING + r"\s*\)"),
]

_BANK_PATTERN = re.compile(r"\.?bank\s*\(\s*" + _STRING + r"\s*\)")

_SEPARATORS = re.compile(r"[\s\[\]<>*/,]+")
_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


@dataclass
class BankUsage:
    """A bank() call and the sounds played near it."""
    bank: str
    sounds: List[str] = field(default_factory=list)


def tokenize_mini(content: str) -> List[str]:
    """
    Sound names in a mini-notation string.

    "bd*2 [sd:3 hh] <cp ~>" -> ["bd", "sd", "hh", "cp"]
    """
    names = []
    for token in _SEPARATORS.split(content):
        name = token.split(":", 1)[0].strip()
        if name and _NAME.match(name):
            names.append(name)
    return names


def extract_sound_names(code: str) -> Set[str]:
    """All sound names passed to s() or sound() anywhere in code."""
    sounds: Set[str] = set()
    for pattern in _SOUND_PATTERNS:
        for match in pattern.finditer(code):
            sounds.update(tokenize_mini(match.group(1)))
    return sounds


def extract_bank_usage(code: str, window: int = 100) -> List[BankUsage]:
    """
    Pair each bank() call with the s() calls around it.

    Only s() calls within `window` characters either side of the bank()
    call are considered, so banks applied far from their sounds (or
    several banks interleaved in one window) are attributed loosely.

    Args:
        code: Pattern source
        window: Characters searched before and after each bank() call

    Returns:
        One BankUsage per bank() call that has sounds nearby
    """
    results = []
    for match in _BANK_PATTERN.finditer(code):
        start = max(0, match.start() - window)
        end = min(len(code), match.end() + window)
        area = code[start:end]

        # .s("bd") matches both patterns
        sounds: List[str] = []
        for pattern in _BANK_SOUND_PATTERNS:
            for sound_match in pattern.finditer(area):
                for name in tokenize_mini(sound_match.group(1)):
                    if name not in sounds:
                        sounds.append(name)

        if sounds:
            results.append(BankUsage(bank=match.group(1), sounds=sounds))
    return results
