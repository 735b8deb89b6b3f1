"""Domain tagger: decides rules early and applies them once the session is known."""

import threading
import traceback
from typing import Callable, FrozenSet, Hashable, NamedTuple, Optional

from applicator import ActionApplicator, TagPolicy
from config import TaggingOptions
from hostnames import extract_requested_host, normalize_address
from pending import PendingDecisionStore, monotonic_ms
from rules import UNMAPPED, Rule, RuleTable


class SessionInfo(NamedTuple):
    session_id: Hashable
    display_name: str
    address: Optional[str] = None


class ReloadResult(NamedTuple):
    ok: bool
    rule_count: int
    known_tag_count: int
    message: str


class DomainTagger:
    """Owns the rule table, the pending decisions and the tag policy.

    ``document_source`` returns the decoded config document and may raise;
    a failed read leaves the tagger running with no mappings.
    """

    def __init__(
        self,
        label_store,
        command_sink,
        scheduler,
        logger,
        statistics=None,
        document_source: Optional[Callable[[], dict]] = None,
        clock=monotonic_ms,
        config=None,
    ):
        self.scheduler = scheduler
        self.logger = logger
        self.statistics = statistics
        self.config = config
        self.document_source = document_source or dict
        self.applicator = ActionApplicator(label_store, command_sink, logger, statistics)

        self.table = RuleTable()
        self.options = TaggingOptions.from_document({}, config)
        self.pending = PendingDecisionStore(self.options.pending_ttl_ms, clock, logger, statistics)
        self._reload_lock = threading.Lock()
        self._load()

    @property
    def known_tags(self) -> FrozenSet[str]:
        return self.table.known_tags

    @property
    def policy(self) -> TagPolicy:
        return self.options.policy

    def on_early_event(
        self,
        raw_host: Optional[str],
        strong_id: Optional[Hashable] = None,
        weak_id: Optional[str] = None,
        original_handshake: Optional[str] = None,
    ) -> Rule:
        """Decide the rule for a connection attempt and keep it until the session joins."""
        try:
            addr = normalize_address(weak_id)
            self.logger.log_access(
                f"Early event id={strong_id} host='{raw_host}' handshake='{original_handshake}' address='{addr}'"
            )
            host = extract_requested_host(raw_host, original_handshake)
            if host is None:
                self.logger.warning("Could not determine requested host; treating as UNMAPPED")
                rule = UNMAPPED
            else:
                rule = self.table.lookup(host)
                if rule.is_unmapped:
                    self.logger.log_access(f"No mapping found for host='{host}'")
                else:
                    self.logger.log_access(
                        f"Matched rule for host='{host}' -> tag='{rule.tag}', "
                        f"message={'set' if rule.has_message else 'none'}"
                    )
            self.pending.record(strong_id, addr, rule)
            return rule
        except Exception:
            self.logger.log_error(f"{raw_host} : {traceback.format_exc()}")
            return UNMAPPED

    def on_session_established(self, session: SessionInfo) -> Rule:
        """Claim the pending rule and schedule tagging after the message delay."""
        try:
            addr = normalize_address(session.address)
            rule, source = self.pending.resolve_with_source(session.session_id, addr)
            if source == "none":
                self.logger.log_access(f"({session.display_name}) no pending decision; UNMAPPED")
            known = self.table.known_tags
            policy = self.options.policy
            self.scheduler.schedule(self.options.message_delay_ms, lambda: self._apply(session, rule, known, policy))
            return rule
        except Exception:
            self.logger.log_error(f"{session.display_name} : {traceback.format_exc()}")
            return UNMAPPED

    def on_session_closed(self, session_id: Hashable) -> None:
        if self.pending.discard(session_id) is not None:
            self.logger.log_access(f"Discarded unclaimed decision for session {session_id}")

    def reload(self, authorized: bool = True) -> ReloadResult:
        if not authorized:
            return ReloadResult(False, len(self.table), len(self.table.known_tags), "You don't have permission.")
        try:
            with self._reload_lock:
                ok = self._load()
        except Exception:
            self.logger.log_error(f"reload : {traceback.format_exc()}")
            return ReloadResult(False, len(self.table), len(self.table.known_tags), "Reload failed.")
        message = "DomainTags config reloaded." if ok else "DomainTags config could not be read; no mappings loaded."
        return ReloadResult(ok, len(self.table), len(self.table.known_tags), message)

    def _load(self) -> bool:
        try:
            doc = self.document_source()
            ok = True
        except Exception as e:
            self.logger.log_error(f"Config could not be read, continuing with no mappings: {e}")
            self.logger.error(f"\033[91m[ERROR]: Config could not be read: {e}\033[0m")
            doc, ok = {}, False

        table = RuleTable.from_document(doc, self.logger) if ok else RuleTable()
        options = TaggingOptions.from_document(doc, self.config)
        self.pending.ttl_ms = options.pending_ttl_ms
        self.options = options
        self.table = table

        if not len(table):
            self.logger.warning("No domain rules loaded. Add entries under 'rules' in the config.")
        else:
            self.logger.log_access("Loaded domain mappings:")
        for line in table.describe():
            self.logger.log_access(line)
        if self.statistics:
            self.statistics.set_rule_counts(len(table), len(table.known_tags))
        return ok

    def _apply(self, session: SessionInfo, rule: Rule, known: FrozenSet[str], policy: TagPolicy) -> None:
        try:
            self.applicator.apply(session, rule, known, policy)
        except Exception:
            self.logger.log_error(f"{session.display_name} : {traceback.format_exc()}")
