"""Turn a resolved rule into label changes and a message command."""

import traceback
from typing import AbstractSet, FrozenSet, List, NamedTuple, Optional

from constants import PLAYER_PLACEHOLDER
from rules import Rule


class TagPolicy(NamedTuple):
    exclusive: bool = True
    clear_all_known_on_unmapped: bool = False
    # single-label mode: every mapped rule stands for this one label
    tag_name: Optional[str] = None


class Mutations(NamedTuple):
    removals: List[str]
    additions: List[str]

    def __bool__(self) -> bool:
        return bool(self.removals or self.additions)


def plan_mutations(rule: Rule, current: AbstractSet[str], known_tags: AbstractSet[str], policy: TagPolicy) -> Mutations:
    if policy.tag_name is not None:
        return _plan_single(rule, current, policy)

    if rule.is_unmapped:
        if policy.clear_all_known_on_unmapped:
            return Mutations(sorted(t for t in known_tags if t in current), [])
        return Mutations([], [])

    if rule.is_clear:
        return Mutations(sorted(t for t in known_tags if t in current), [])

    target = rule.tag
    removals = []
    if policy.exclusive:
        removals = sorted(t for t in known_tags if t != target and t in current)
    additions = [] if target in current else [target]
    return Mutations(removals, additions)


def _plan_single(rule: Rule, current: AbstractSet[str], policy: TagPolicy) -> Mutations:
    name = policy.tag_name
    had = name in current
    if rule.is_unmapped:
        remove = policy.clear_all_known_on_unmapped and had
        return Mutations([name] if remove else [], [])
    if rule.is_clear:
        return Mutations([name] if had else [], [])
    return Mutations([], [] if had else [name])


def render_message(template: str, display_name: str) -> str:
    return template.replace(PLAYER_PLACEHOLDER, display_name)


class ActionApplicator:
    def __init__(self, label_store, command_sink, logger, statistics=None):
        self.label_store = label_store
        self.command_sink = command_sink
        self.logger = logger
        self.statistics = statistics

    def apply(self, session, rule: Rule, known_tags: FrozenSet[str], policy: TagPolicy) -> Mutations:
        store = self.label_store
        sid = session.session_id
        if not store.has_session(sid):
            self.logger.log_access(f"({session.display_name}) session left before tagging; skipped")
            return Mutations([], [])
        planned = plan_mutations(rule, store.labels(sid), known_tags, policy)

        removed = 0
        for name in planned.removals:
            if store.has_label(sid, name) and store.remove_label(sid, name):
                removed += 1
        added = 0
        for name in planned.additions:
            if not store.has_label(sid, name):
                store.add_label(sid, name)
                added += 1
        if self.statistics:
            self.statistics.update_labels(added, removed)

        self.logger.log_access(f"({session.display_name}) {self._describe(rule, policy)} -> {self._outcome(planned)}")

        if rule.has_message:
            self.dispatch(session, rule.message)
        return planned

    def dispatch(self, session, template: str) -> bool:
        command = render_message(template, session.display_name)
        try:
            ok = bool(self.command_sink.dispatch(command, session_id=session.session_id))
        except Exception:
            ok = False
            self.logger.log_error(f"{session.display_name} : {traceback.format_exc()}")
        if self.statistics:
            self.statistics.increment_commands(ok)
        self.logger.log_access(
            f"({session.display_name}) Ran message command -> {'OK' if ok else 'FAILED'} : {command}"
        )
        if not ok:
            self.logger.warning(f"Message command failed for {session.display_name}: {command}")
        return ok

    @staticmethod
    def _describe(rule: Rule, policy: TagPolicy) -> str:
        if rule.is_unmapped:
            return "UNMAPPED"
        if rule.is_clear:
            return "MAPPED(blank)"
        if policy.tag_name is not None:
            return f"MAPPED('{rule.tag}' as '{policy.tag_name}')"
        return f"MAPPED('{rule.tag}')"

    @staticmethod
    def _outcome(planned: Mutations) -> str:
        if not planned:
            return "no tag changes"
        parts = []
        if planned.removals:
            parts.append("removed " + ", ".join(planned.removals))
        if planned.additions:
            parts.append("added " + ", ".join(planned.additions))
        return "; ".join(parts)
