import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

import fakes  # noqa: F401  (puts src/ on sys.path)
from hostnames import extract_requested_host, normalize, normalize_address


class TestNormalize(unittest.TestCase):
    def test_strips_port_suffix_and_case(self):
        self.assertEqual(normalize("MC.Example.COM:25565\0extra"), "mc.example.com")

    def test_blank_is_unusable(self):
        self.assertIsNone(normalize(""))
        self.assertIsNone(normalize("   "))
        self.assertIsNone(normalize(None))
        self.assertIsNone(normalize(b"mc.example.com"))

    def test_trailing_dot(self):
        self.assertEqual(normalize("host."), "host")
        self.assertEqual(normalize("  Host.  "), "host")
        self.assertEqual(normalize("host.."), "host.")
        self.assertIsNone(normalize("."))

    def test_nul_before_port(self):
        self.assertEqual(normalize("play.example.net\0FML2\0"), "play.example.net")
        self.assertIsNone(normalize("\0play.example.net"))
        self.assertIsNone(normalize(":25565"))

    def test_handshake_fallback(self):
        self.assertEqual(extract_requested_host("Lobby.Example.com", "other.example.com"), "lobby.example.com")
        self.assertEqual(extract_requested_host(None, "mc.kacboy.com.\0junk"), "mc.kacboy.com")
        self.assertEqual(extract_requested_host("  ", "mc.kacboy.com:19132"), "mc.kacboy.com")
        self.assertIsNone(extract_requested_host(None, None))

    def test_address(self):
        self.assertEqual(normalize_address(" 203.0.113.7 "), "203.0.113.7")
        self.assertEqual(normalize_address("FE80::1"), "fe80::1")
        self.assertIsNone(normalize_address(""))
        self.assertIsNone(normalize_address(None))


if __name__ == "__main__":
    unittest.main()
