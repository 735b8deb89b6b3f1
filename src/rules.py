"""Host to rule table for tag decisions."""

from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, NamedTuple, Optional

from hostnames import normalize


class Rule(NamedTuple):
    """What to do with a session that asked for a host.

    ``tag`` None means no directive, ``""`` clears every known tag and
    anything else is the tag to ensure. ``message`` is a command template.
    """

    tag: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_unmapped(self) -> bool:
        return self.tag is None

    @property
    def is_clear(self) -> bool:
        return self.tag is not None and not self.tag.strip()

    @property
    def has_message(self) -> bool:
        return bool(self.message and self.message.strip())


UNMAPPED = Rule(None, None)


def _opt_str(value) -> Optional[str]:
    return None if value is None else str(value)


class RuleTable:
    def __init__(self, rules: Optional[Mapping[str, Rule]] = None):
        self._rules: Dict[str, Rule] = dict(rules or {})
        self.known_tags: FrozenSet[str] = frozenset(iter_known(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, host) -> bool:
        return host in self._rules

    def lookup(self, host: Optional[str]) -> Rule:
        if host is None:
            return UNMAPPED
        return self._rules.get(host, UNMAPPED)

    def items(self):
        return self._rules.items()

    @classmethod
    def load(cls, entries: Iterable, logger=None) -> "RuleTable":
        rules: Dict[str, Rule] = {}
        for entry in entries or []:
            if not isinstance(entry, Mapping):
                if logger:
                    logger.warning(f"Skipping a rule that is not a mapping: {entry!r}")
                continue
            host = normalize(_opt_str(entry.get("host")))
            if host is None:
                if logger:
                    logger.warning("Skipping a rule with missing/blank 'host'")
                continue
            rules[host] = Rule(_opt_str(entry.get("tag")), _opt_str(entry.get("message")))
        return cls(rules)

    @classmethod
    def from_document(cls, doc, logger=None) -> "RuleTable":
        """Build a table from a decoded config document.

        The ``rules`` list is the supported format. A legacy ``domains``
        section is still read and overrides list entries for the same host.
        """
        doc = doc if isinstance(doc, Mapping) else {}
        rules_list = doc.get("rules")
        domains = doc.get("domains")
        if not isinstance(rules_list, list) and not isinstance(domains, Mapping):
            if logger:
                logger.log_error("No 'rules' list found in config. Rules must use the 'rules:' format.")
                logger.error("\033[91m[ERROR]: No 'rules' list found in config\033[0m")
            return cls()
        table = cls.load(rules_list if isinstance(rules_list, list) else [], logger)
        if not isinstance(domains, Mapping):
            return table
        merged = dict(table.items())
        flatten_domains(domains, "", merged)
        return cls(merged)

    def describe(self) -> List[str]:
        lines = []
        for host, rule in self._rules.items():
            tag = "null" if rule.tag is None else rule.tag
            lines.append(f"  - '{host}' -> tag='{tag}' message={'set' if rule.has_message else 'none'}")
        known = ", ".join(sorted(self.known_tags)) if self.known_tags else "(none)"
        lines.append(f"Known rule tags: {known}")
        return lines


def flatten_domains(section: Mapping, prefix: str, out: Dict[str, Rule]) -> None:
    """Flatten a nested ``domains`` mapping into dotted hostnames.

    ``{"mc": {"example": {"com": "vip"}}}`` maps ``mc.example.com`` to tag
    ``vip``, the same as a flat ``{"mc.example.com": "vip"}``.
    A section holding ``tag`` or ``message`` keys is itself a rule.
    """
    if prefix and ("tag" in section or "message" in section):
        host = normalize(prefix)
        if host is not None:
            out[host] = Rule(_opt_str(section.get("tag", "")), _opt_str(section.get("message", "")))

    for key, value in section.items():
        if key in ("tag", "message"):
            continue
        next_prefix = str(key) if not prefix else f"{prefix}.{key}"
        if isinstance(value, Mapping):
            flatten_domains(value, next_prefix, out)
            continue
        host = normalize(next_prefix)
        if host is not None:
            out[host] = Rule("" if value is None else str(value), None)


def iter_known(rules: Iterable[Rule]) -> Iterator[str]:
    for r in rules:
        if r.tag is not None and r.tag.strip():
            yield r.tag
