"""Ordered, specificity-scored pattern rules over prepared listing text.

Text is lower-cased and punctuation is replaced by spaces before matching,
except a dot between two digits (``992.1``, ``4.0``). Rules match whole words
only. When several rules match, the longest literal match wins; equal lengths
break by earliest position and then by output id.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

_PUNCTUATION = re.compile(r"(?<!\d)\.|\.(?!\d)|[^\w\s.]|_")
_WHITESPACE = re.compile(r"\s+")


def prepare_text(*parts: Optional[str]) -> str:
    text = " ".join(part for part in parts if part)
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


@dataclass(frozen=True)
class Rule:
    pattern: str
    output: str
    specificity: int

    @classmethod
    def literal(cls, alias: str, output: str) -> "Rule":
        pattern = prepare_text(alias)
        return cls(pattern=pattern, output=output, specificity=len(pattern))


@dataclass(frozen=True)
class RuleMatch:
    rule: Rule
    start: int
    end: int

    @property
    def output(self) -> str:
        return self.rule.output

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "RuleMatch") -> bool:
        return self.start < other.end and other.start < self.end


class RuleSet:
    def __init__(self, rules: Iterable[Rule]) -> None:
        unique = {(rule.pattern, rule.output): rule for rule in rules if rule.pattern}
        self.rules: List[Rule] = sorted(unique.values(), key=lambda r: (-r.specificity, r.output, r.pattern))
        self._compiled = [(rule, _compile(rule.pattern)) for rule in self.rules]

    def __len__(self) -> int:
        return len(self.rules)

    def matches(self, text: str) -> List[RuleMatch]:
        found = [
            RuleMatch(rule=rule, start=match.start(), end=match.end())
            for rule, regex in self._compiled
            for match in regex.finditer(text)
        ]
        return sorted(found, key=lambda m: (-m.length, m.start, m.output))

    def best(self, text: str) -> Optional[RuleMatch]:
        found = self.matches(text)
        return found[0] if found else None

    def all_outputs(self, text: str) -> List[str]:
        """Distinct outputs of non-overlapping matches, longest first, in text order."""
        accepted: List[RuleMatch] = []
        for candidate in self.matches(text):
            if any(candidate.overlaps(existing) for existing in accepted):
                continue
            accepted.append(candidate)
        accepted.sort(key=lambda m: m.start)
        return list(dict.fromkeys(m.output for m in accepted))


def _compile(pattern: str) -> re.Pattern:
    # a dotted number such as 992.1 is one token: "992" must not match inside it
    return re.compile(rf"(?<![a-z0-9])(?<!\d\.){re.escape(pattern)}(?![a-z0-9])(?!\.\d)")
