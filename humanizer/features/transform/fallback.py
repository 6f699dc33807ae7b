"""
Local fallback strategy.

Deterministic regex rewrites keyed by level. Each level applies every rule
of the level below it plus its own, so rewrites only grow with intensity.
Pure and total: never raises, never touches I/O.
"""
import re
from typing import Callable, Dict, List, Tuple, Union

from humanizer.models.transformation import TransformationLevel

Replacement = Union[str, Callable[[re.Match], str]]
Rule = Tuple[re.Pattern, Replacement]


def _match_case(source: str, replacement: str) -> str:
    if source.isupper() and len(source) > 1:
        return replacement.upper()
    if source[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def _swap(words: str, replacement: str) -> Rule:
    pattern = re.compile(rf"\b({words})\b", re.IGNORECASE)
    return pattern, lambda m: _match_case(m.group(0), replacement)


def _hedge(m: re.Match) -> str:
    return f"{m.group(0)} actually"


def _smooth(m: re.Match) -> str:
    # ". Next sentence" -> ". Well, next sentence"; acronyms like "I" keep their case
    word = m.group(2)
    if word == "I" or word.startswith("I'") or (len(word) > 1 and word.isupper()):
        return f"{m.group(1)}Well, {word}"
    return f"{m.group(1)}Well, {word[:1].lower()}{word[1:]}"


SLIGHT_RULES: List[Rule] = [
    _swap("utilize|implement", "use"),
    _swap("however", "but"),
    (re.compile(r"\b(is|are)\b(?! actually\b)"), _hedge),
]

MODERATE_RULES: List[Rule] = SLIGHT_RULES + [
    _swap("therefore", "so"),
    _swap("subsequently", "then"),
    (re.compile(r"([.!?]\s+)(?!Well,)([A-Za-z][\w']*)"), _smooth),
]

SUBSTANTIAL_RULES: List[Rule] = MODERATE_RULES + [
    _swap("additionally|furthermore", "also"),
    _swap("commenced", "started"),
    _swap("concluded", "ended"),
]

RULES: Dict[TransformationLevel, List[Rule]] = {
    TransformationLevel.SLIGHT: SLIGHT_RULES,
    TransformationLevel.MODERATE: MODERATE_RULES,
    TransformationLevel.SUBSTANTIAL: SUBSTANTIAL_RULES,
}


def _apply(text: str, rules: List[Rule]) -> str:
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text)
    return text


def _restructure(text: str) -> str:
    """Conversational opener plus trailing-ellipsis punctuation."""
    stripped = text.lstrip()
    if stripped and not stripped.startswith("So,"):
        first = stripped[:1]
        keep_case = stripped.startswith("I ") or stripped.startswith("I'") or stripped.split(" ", 1)[0].isupper()
        stripped = "So, " + (stripped if keep_case else first.lower() + stripped[1:])
    return re.sub(r"(?<!\.)\.(?![.\d])", "...", stripped)


class FallbackStrategy:
    """Always-available local rewriter."""

    name = "fallback"

    def transform(self, text: str, level: TransformationLevel) -> str:
        rules = RULES.get(level, MODERATE_RULES)
        rewritten = _apply(text, rules)
        if level == TransformationLevel.SUBSTANTIAL:
            rewritten = _restructure(rewritten)
        return rewritten
