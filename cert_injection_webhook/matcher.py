from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .errors import ConfigurationError


@dataclass(frozen=True)
class MatchRule:
    """A ``key`` or ``key=value`` selector over labels or annotations."""

    key: str
    value: str | None = None

    def matches(self, metadata: Mapping[str, str]) -> bool:
        if self.key not in metadata:
            return False
        # A bare key matches on presence alone, empty values included.
        return self.value is None or metadata[self.key] == self.value

    def __str__(self) -> str:
        return self.key if self.value is None else f"{self.key}={self.value}"


def parse_rule(text: str) -> MatchRule:
    key, sep, value = text.partition("=")
    key = key.strip()
    if not key:
        raise ConfigurationError(f"invalid match rule {text!r}: empty key")
    return MatchRule(key=key, value=value.strip() if sep else None)


def parse_rules(texts: Iterable[str]) -> tuple[MatchRule, ...]:
    return tuple(parse_rule(t) for t in texts)


def matches(rules: Iterable[MatchRule], metadata: Mapping[str, str] | None) -> bool:
    metadata = metadata or {}
    return any(rule.matches(metadata) for rule in rules)


def matches_pod(
    label_rules: Iterable[MatchRule],
    annotation_rules: Iterable[MatchRule],
    labels: Mapping[str, str] | None,
    annotations: Mapping[str, str] | None,
) -> bool:
    """True when any label rule matches the labels or any annotation rule the annotations."""
    return matches(label_rules, labels) or matches(annotation_rules, annotations)
