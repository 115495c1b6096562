from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Iterable, Mapping

__all__ = [
    "RulePayload",
    "ReplacementRule",
    "ReplacementEngine",
    "build_regex",
    "compile_rules",
    "parse_rule_payloads",
]

logger = logging.getLogger(__name__)

_FLAG_BITS = {
    "i": re.IGNORECASE,
    "I": re.IGNORECASE,
    "m": re.MULTILINE,
    "M": re.MULTILINE,
    "s": re.DOTALL,
    "S": re.DOTALL,
    "x": re.VERBOSE,
    "X": re.VERBOSE,
}
_SWAP_GREED_FLAG = "U"

# Counted repetition; "{" that does not start one of these is a literal.
_BRACE_QUANTIFIER = re.compile(r"\{(?:\d+(?:,\d*)?|,\d+)\}")
_TEMPLATE_REF = re.compile(r"\$(?:(\$)|\{([^}]+)\}|([A-Za-z0-9_]+))")


@dataclass(slots=True)
class RulePayload:
    pattern: str
    replacement: str
    flags: str = ""

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> "RulePayload":
        pattern = raw.get("pattern")
        replacement = raw.get("replacement", "")
        flags = raw.get("flags") or ""
        if not isinstance(pattern, str):
            raise ValueError("pattern must be a string.")
        if not isinstance(replacement, str):
            raise ValueError("replacement must be a string.")
        if not isinstance(flags, str):
            raise ValueError("flags must be a string.")
        return cls(pattern=pattern, replacement=replacement, flags=flags)


def parse_rule_payloads(raw: object) -> list[RulePayload]:
    if not isinstance(raw, list):
        raise ValueError("rules must be a list.")
    payloads: list[RulePayload] = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise ValueError("each rule must be an object.")
        payloads.append(RulePayload.from_mapping(entry))
    return payloads


@dataclass(frozen=True, slots=True)
class _GroupRef:
    group: int | str


class _Template:
    """Replacement string with ``$1``/``${name}`` references, ``$$`` for ``$``."""

    __slots__ = ("_parts", "_literal")

    def __init__(self, source: str) -> None:
        parts: list[str | _GroupRef] = []
        pos = 0
        for match in _TEMPLATE_REF.finditer(source):
            if match.start() > pos:
                parts.append(source[pos:match.start()])
            if match.group(1):
                parts.append("$")
            else:
                name = match.group(2) or match.group(3)
                parts.append(_GroupRef(int(name) if name.isascii() and name.isdigit() else name))
            pos = match.end()
        if pos < len(source):
            parts.append(source[pos:])
        self._parts = tuple(parts)
        if all(isinstance(part, str) for part in parts):
            self._literal: str | None = "".join(parts)  # type: ignore[arg-type]
        else:
            self._literal = None

    def expand(self, match: re.Match[str]) -> str:
        if self._literal is not None:
            return self._literal
        pieces: list[str] = []
        for part in self._parts:
            if isinstance(part, str):
                pieces.append(part)
                continue
            try:
                value = match.group(part.group)
            except IndexError:
                value = None
            pieces.append(value or "")
        return "".join(pieces)


@dataclass(frozen=True, slots=True)
class ReplacementRule:
    regex: re.Pattern[str]
    replacement: str
    template: _Template

    def apply(self, text: str) -> str:
        return self.regex.sub(self.template.expand, text)


def _swap_greed(pattern: str) -> str:
    """Toggle the laziness of every quantifier in ``pattern``."""
    out: list[str] = []
    idx = 0
    length = len(pattern)
    in_class = False
    while idx < length:
        ch = pattern[idx]
        if ch == "\\":
            out.append(pattern[idx:idx + 2])
            idx += 2
            continue
        if in_class:
            if ch == "]":
                in_class = False
            out.append(ch)
            idx += 1
            continue
        if ch == "[":
            in_class = True
            out.append(ch)
            idx += 1
            if idx < length and pattern[idx] == "^":
                out.append("^")
                idx += 1
            if idx < length and pattern[idx] == "]":
                out.append("]")
                idx += 1
            continue
        if ch == "(" and pattern.startswith("?", idx + 1):
            out.append("(?")
            idx += 2
            continue
        quantifier = None
        if ch in "*+?":
            quantifier = ch
        elif ch == "{":
            brace = _BRACE_QUANTIFIER.match(pattern, idx)
            if brace:
                quantifier = brace.group(0)
        if quantifier is None:
            out.append(ch)
            idx += 1
            continue
        out.append(quantifier)
        idx += len(quantifier)
        following = pattern[idx] if idx < length else ""
        if following == "?":
            idx += 1
        elif following == "+":
            # possessive quantifiers have no lazy form
            out.append("+")
            idx += 1
        else:
            out.append("?")
    return "".join(out)


def build_regex(pattern: str, flags: str = "") -> re.Pattern[str]:
    bits = 0
    swap_greed = False
    for flag in flags:
        if flag == _SWAP_GREED_FLAG:
            swap_greed = True
        else:
            bits |= _FLAG_BITS.get(flag, 0)
    if swap_greed:
        pattern = _swap_greed(pattern)
    return re.compile(pattern, bits)


def compile_rules(payloads: Iterable[RulePayload]) -> list[ReplacementRule]:
    compiled: list[ReplacementRule] = []
    for payload in payloads:
        if not payload.pattern.strip():
            continue
        try:
            regex = build_regex(payload.pattern, payload.flags)
        except re.error as exc:
            logger.warning("Failed to compile regex %r: %s", payload.pattern, exc)
            continue
        try:
            template = _Template(payload.replacement)
        except ValueError as exc:
            logger.warning("Failed to parse replacement %r: %s", payload.replacement, exc)
            continue
        compiled.append(ReplacementRule(regex=regex, replacement=payload.replacement, template=template))
    return compiled


class ReplacementEngine:
    """Ordered, hot-swappable regex rewrite rules applied to every input."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rules: tuple[ReplacementRule, ...] = ()

    def install(self, payloads: Iterable[RulePayload]) -> int:
        compiled = tuple(compile_rules(payloads))
        with self._lock:
            self._rules = compiled
        logger.debug("Installed %d replacement rule(s)", len(compiled))
        return len(compiled)

    def rules(self) -> tuple[ReplacementRule, ...]:
        with self._lock:
            return self._rules

    def apply(self, text: str) -> str:
        rules = self.rules()
        if not rules:
            return text
        output = text
        for rule in rules:
            output = rule.apply(output)
        return output
