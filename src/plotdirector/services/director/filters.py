# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Ordered regex find/replace rules applied to outgoing prompt content.

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}
# Accepted for compatibility with saved rules; every match is always replaced.
_IGNORED_FLAGS = {"g", "u"}


@dataclass
class FilterRule:
    pattern: str
    replacement: str = ""
    flags: str = "g"
    enabled: bool = True
    label: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilterRule":
        return cls(
            pattern=str(data.get("pattern") or ""),
            replacement=str(data.get("replacement") or ""),
            flags=str(data.get("flags", "g") or ""),
            enabled=bool(data.get("enabled", True)),
            label=str(data.get("label") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompiledRule:
    rule: FilterRule
    regex: re.Pattern


Warn = Callable[[str], None]


def _rule_name(rule: FilterRule, index: int) -> str:
    return rule.label or f"#{index + 1}"


def parse_flags(flags: str) -> int:
    value = 0
    for ch in flags or "":
        if ch in _FLAG_MAP:
            value |= _FLAG_MAP[ch]
        elif ch not in _IGNORED_FLAGS:
            raise ValueError(f"unknown flag '{ch}'")
    return value


def compile_rules(rules: List[FilterRule], warn: Warn | None = None) -> List[CompiledRule]:
    """Compile enabled rules, dropping (and reporting) the ones that do not compile."""
    active: List[CompiledRule] = []
    for i, rule in enumerate(rules):
        if not rule.enabled or not rule.pattern:
            continue
        try:
            regex = re.compile(rule.pattern, parse_flags(rule.flags))
        except (re.error, ValueError) as exc:
            message = f"Filter rule {_rule_name(rule, i)} skipped: {exc}"
            logger.warning(message)
            if warn:
                warn(message)
            continue
        active.append(CompiledRule(rule, regex))
    return active


def apply_filters(
    messages: List[Dict[str, str]],
    rules: List[FilterRule],
    warn: Warn | None = None,
) -> List[Dict[str, str]]:
    """Apply the rules in order to every message's content.

    Each rule sees the output of the previous one. Messages whose content is
    left untouched come back as the same dict instance.
    """
    compiled = compile_rules(rules, warn)
    if not compiled:
        return list(messages)

    result: List[Dict[str, str]] = []
    for msg in messages:
        content = msg.get("content") or ""
        original = content
        for item in list(compiled):
            try:
                content = item.regex.sub(item.rule.replacement, content)
            except (re.error, IndexError) as exc:
                message = f"Filter rule {item.rule.label or item.rule.pattern!r} dropped: {exc}"
                logger.warning(message)
                if warn:
                    warn(message)
                compiled.remove(item)
        if content == original:
            result.append(msg)
        else:
            result.append({**msg, "content": content})
    return result
