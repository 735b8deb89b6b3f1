"""Decision and action statistics tracking."""

import threading
from typing import Dict

from interfaces import IStatistics


class Statistics(IStatistics):
    def __init__(self):
        self._lock = threading.Lock()
        self.recorded = 0
        self.dropped = 0
        self.resolved_strong = 0
        self.resolved_weak = 0
        self.resolved_missed = 0
        self.labels_added = 0
        self.labels_removed = 0
        self.commands_ok = 0
        self.commands_failed = 0
        self.errors = 0
        self.rules = 0
        self.known_tags = 0

    def increment_recorded(self) -> None:
        with self._lock:
            self.recorded += 1

    def increment_dropped(self) -> None:
        with self._lock:
            self.dropped += 1

    def increment_resolved(self, source: str) -> None:
        with self._lock:
            if source == "strong":
                self.resolved_strong += 1
            elif source == "weak":
                self.resolved_weak += 1
            else:
                self.resolved_missed += 1

    def update_labels(self, added: int, removed: int) -> None:
        with self._lock:
            self.labels_added += added
            self.labels_removed += removed

    def increment_commands(self, ok: bool) -> None:
        with self._lock:
            if ok:
                self.commands_ok += 1
            else:
                self.commands_failed += 1

    def increment_errors(self) -> None:
        with self._lock:
            self.errors += 1

    def set_rule_counts(self, rules: int, known_tags: int) -> None:
        self.rules = rules
        self.known_tags = known_tags

    def get_stats_display(self) -> str:
        col_width = 30
        rules_stat = (
            f"\033[97mRules: \033[93m{self.rules}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mTags: \033[96m{self.known_tags}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mErrors: \033[91m{self.errors}\033[0m".ljust(col_width)
        )
        decisions_stat = (
            f"\033[97mStored: \033[93m{self.recorded}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mBy id: \033[96m{self.resolved_strong}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mBy addr: \033[96m{self.resolved_weak}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mMissed: \033[91m{self.resolved_missed}\033[0m".ljust(col_width)
        )
        actions_stat = (
            f"\033[97mAdded: \033[92m{self.labels_added}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mRemoved: \033[92m{self.labels_removed}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mCmd OK: \033[92m{self.commands_ok}\033[0m".ljust(col_width)
            + "\033[97m| "
            + f"\033[97mCmd fail: \033[91m{self.commands_failed}\033[0m"
        )
        title = "STATISTICS"
        top_border = f"\033[92m{'=' * 36} {title} {'=' * 36}\033[0m"
        line_rules = f"\033[92m   {'Rules'.ljust(9)}:\033[0m {rules_stat}\033[0m"
        line_decisions = f"\033[92m   {'Decisions'.ljust(9)}:\033[0m {decisions_stat}\033[0m"
        line_actions = f"\033[92m   {'Actions'.ljust(9)}:\033[0m {actions_stat}\033[0m"
        bottom = f"\033[92m{'=' * (36 * 2 + len(title) + 2)}\033[0m"
        return f"{top_border}\n{line_rules}\n{line_decisions}\n{line_actions}\n{bottom}"

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            resolved = self.resolved_strong + self.resolved_weak + self.resolved_missed
            hit_rate = ((self.resolved_strong + self.resolved_weak) / resolved) * 100 if resolved > 0 else 0.0
            return {
                "rules": self.rules,
                "known_tags": self.known_tags,
                "recorded": self.recorded,
                "dropped": self.dropped,
                "resolved_strong": self.resolved_strong,
                "resolved_weak": self.resolved_weak,
                "resolved_missed": self.resolved_missed,
                "labels_added": self.labels_added,
                "labels_removed": self.labels_removed,
                "commands_ok": self.commands_ok,
                "commands_failed": self.commands_failed,
                "errors": self.errors,
                "hit_rate": hit_rate,
            }
