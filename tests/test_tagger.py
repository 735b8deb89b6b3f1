import os
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from config import ConfigLoader
from fakes import FakeClock, ManualScheduler, MemoryLabelStore, RecordingLogger, RecordingSink
from json_utils import json_dumps
from rules import UNMAPPED, Rule
from stats import Statistics
from tagger import DomainTagger, SessionInfo

DOC = {
    "rules": [
        {"host": "vip.example.com", "tag": "vip", "message": "broadcast %player% joined VIP"},
        {"host": "play.example.com", "tag": "guest"},
        {"host": "reset.example.com", "tag": ""},
    ],
    "exclusive": True,
    "message_delay_ticks": 20,
    "pending_ip_ttl_ms": 10_000,
}


class TaggerTestCase(unittest.TestCase):
    doc = DOC

    def setUp(self):
        self.labels = MemoryLabelStore()
        self.sink = RecordingSink()
        self.scheduler = ManualScheduler()
        self.logger = RecordingLogger()
        self.stats = Statistics()
        self.clock = FakeClock()
        self.current_doc = self.doc
        self.tagger = DomainTagger(
            self.labels,
            self.sink,
            self.scheduler,
            self.logger,
            self.stats,
            document_source=lambda: self.current_doc,
            clock=self.clock,
        )


class TestDomainTagger(TaggerTestCase):
    def test_end_to_end(self):
        rule = self.tagger.on_early_event("VIP.example.com:25565", strong_id="uuid-alice")
        self.assertEqual(rule.tag, "vip")
        self.assertEqual(self.scheduler.calls, [])

        self.tagger.on_session_established(SessionInfo("uuid-alice", "Alice", "10.0.0.1"))
        self.assertEqual(self.scheduler.calls[0][0], 1000)
        self.assertFalse(self.labels.has_label("uuid-alice", "vip"))

        self.scheduler.run_all()
        self.assertTrue(self.labels.has_label("uuid-alice", "vip"))
        self.assertEqual(self.sink.commands, ["broadcast Alice joined VIP"])

    def test_weak_fallback_when_id_unknown(self):
        self.tagger.on_early_event(None, weak_id="10.0.0.9", original_handshake="play.example.com.\0FML")
        self.tagger.on_session_established(SessionInfo("uuid-bob", "Bob", " 10.0.0.9 "))
        self.scheduler.run_all()
        self.assertEqual(self.labels.labels("uuid-bob"), {"guest"})
        self.assertEqual(self.stats.resolved_weak, 1)

    def test_weak_decision_expires(self):
        self.tagger.on_early_event("play.example.com", weak_id="10.0.0.9")
        self.clock.advance(10_001)
        rule = self.tagger.on_session_established(SessionInfo("uuid-bob", "Bob", "10.0.0.9"))
        self.assertIs(rule, UNMAPPED)

    def test_unusable_host_is_unmapped(self):
        rule = self.tagger.on_early_event("   ", strong_id="uuid-carol")
        self.assertIs(rule, UNMAPPED)
        self.assertTrue(self.logger.warnings)
        self.labels.add_label("uuid-carol", "vip")
        self.tagger.on_session_established(SessionInfo("uuid-carol", "Carol"))
        self.scheduler.run_all()
        self.assertEqual(self.labels.labels("uuid-carol"), {"vip"})

    def test_exclusive_swap_on_rejoin(self):
        self.labels.add_label("uuid-alice", "guest")
        self.tagger.on_early_event("vip.example.com", strong_id="uuid-alice")
        self.tagger.on_session_established(SessionInfo("uuid-alice", "Alice"))
        self.scheduler.run_all()
        self.assertEqual(self.labels.labels("uuid-alice"), {"vip"})

    def test_clear_rule(self):
        self.labels.sessions["uuid-alice"] = {"vip", "guest", "builder"}
        self.tagger.on_early_event("reset.example.com", strong_id="uuid-alice")
        self.tagger.on_session_established(SessionInfo("uuid-alice", "Alice"))
        self.scheduler.run_all()
        self.assertEqual(self.labels.labels("uuid-alice"), {"builder"})

    def test_session_closed_discards(self):
        self.tagger.on_early_event("vip.example.com", strong_id="uuid-alice")
        self.tagger.on_session_closed("uuid-alice")
        self.assertIs(self.tagger.on_session_established(SessionInfo("uuid-alice", "Alice")), UNMAPPED)

    def test_failed_dispatch_does_not_raise(self):
        self.sink.exc = RuntimeError("boom")
        self.tagger.on_early_event("vip.example.com", strong_id="uuid-alice")
        self.tagger.on_session_established(SessionInfo("uuid-alice", "Alice"))
        self.scheduler.run_all()
        self.assertTrue(self.labels.has_label("uuid-alice", "vip"))
        self.assertEqual(self.stats.commands_failed, 1)

    def test_reload_swaps_table(self):
        before = self.tagger.table
        self.tagger.on_early_event("vip.example.com", strong_id="uuid-alice")
        self.current_doc = {"rules": [{"host": "new.example.com", "tag": "new"}]}
        result = self.tagger.reload()
        self.assertTrue(result.ok)
        self.assertEqual((result.rule_count, result.known_tag_count), (1, 1))
        self.assertIsNot(self.tagger.table, before)
        self.assertEqual(before.lookup("vip.example.com").tag, "vip")
        self.assertEqual(self.tagger.on_session_established(SessionInfo("uuid-alice", "Alice")).tag, "vip")

    def test_reload_denied(self):
        self.current_doc = {"rules": []}
        result = self.tagger.reload(authorized=False)
        self.assertFalse(result.ok)
        self.assertEqual(result.rule_count, 3)
        self.assertEqual(len(self.tagger.table), 3)

    def test_reload_failure_fails_open(self):
        def broken():
            raise ValueError("bad json")

        self.tagger.document_source = broken
        result = self.tagger.reload()
        self.assertFalse(result.ok)
        self.assertEqual(result.rule_count, 0)
        self.assertIs(self.tagger.on_early_event("vip.example.com", strong_id="x"), UNMAPPED)
        self.assertTrue(self.logger.errors)

    def test_ttl_follows_config(self):
        self.assertEqual(self.tagger.pending.ttl_ms, 10_000)
        self.current_doc = {"rules": [], "pending_ip_ttl_ms": 1}
        self.tagger.reload()
        self.assertEqual(self.tagger.pending.ttl_ms, 5_000)


class TestSimpleMode(TaggerTestCase):
    doc = {
        "mode": "simple",
        "tag_name": "irl",
        "remove_on_unmapped": True,
        "rules": [{"host": "irl.example.com", "tag": "yes"}, {"host": "off.example.com", "tag": ""}],
    }

    def _join(self, host, sid="uuid-dan"):
        self.tagger.on_early_event(host, strong_id=sid)
        self.tagger.on_session_established(SessionInfo(sid, "Dan"))
        self.scheduler.run_all()
        return self.labels.labels(sid)

    def test_mapped_adds_tag_name(self):
        self.assertEqual(self._join("irl.example.com"), {"irl"})

    def test_blank_removes_tag_name(self):
        self.labels.add_label("uuid-dan", "irl")
        self.assertEqual(self._join("off.example.com"), set())

    def test_unmapped_removes_when_enabled(self):
        self.labels.add_label("uuid-dan", "irl")
        self.labels.add_label("uuid-dan", "yes")
        self.assertEqual(self._join("elsewhere.example.com"), {"yes"})


class TestConfigFile(unittest.TestCase):
    def test_reads_json_document(self):
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False, encoding="utf-8") as tmp:
            tmp.write(json_dumps(DOC))
            path = tmp.name
        try:
            tagger = DomainTagger(
                MemoryLabelStore(),
                RecordingSink(),
                ManualScheduler(),
                RecordingLogger(),
                document_source=lambda: ConfigLoader.read_document(path),
            )
            self.assertEqual(tagger.table.lookup("vip.example.com"), Rule("vip", "broadcast %player% joined VIP"))
            self.assertEqual(tagger.known_tags, frozenset({"vip", "guest"}))
        finally:
            os.unlink(path)

    def test_missing_file_fails_open(self):
        logger = RecordingLogger()
        tagger = DomainTagger(
            MemoryLabelStore(),
            RecordingSink(),
            ManualScheduler(),
            logger,
            document_source=lambda: ConfigLoader.read_document("/nonexistent/domaintags.json"),
        )
        self.assertEqual(len(tagger.table), 0)
        self.assertTrue(logger.errors)


if __name__ == "__main__":
    unittest.main()
