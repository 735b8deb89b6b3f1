"""Tagger configuration, CLI and config document loader."""

from typing import Mapping, Optional

from applicator import TagPolicy
from constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TAG_NAME,
    MESSAGE_DELAY_TICKS,
    PENDING_TTL_FLOOR_MS,
    PENDING_TTL_MS,
)
from json_utils import load_json_file
from scheduler import ticks_to_ms


class TaggerConfig:
    def __init__(self):
        self.host = DEFAULT_HOST
        self.port = DEFAULT_PORT
        self.config_file = None
        self.log_access_file = None
        self.log_error_file = None
        self.stats_file = None
        self.quiet = False
        # command line overrides for the document values
        self.pending_ttl_ms = None
        self.message_delay_ms = None


class TaggingOptions:
    """Per-load settings read from the config document."""

    def __init__(self, policy: TagPolicy, message_delay_ms: int, pending_ttl_ms: int):
        self.policy = policy
        self.message_delay_ms = message_delay_ms
        self.pending_ttl_ms = pending_ttl_ms

    @classmethod
    def from_document(cls, doc, config: Optional[TaggerConfig] = None) -> "TaggingOptions":
        doc = doc if isinstance(doc, Mapping) else {}
        mode = str(doc.get("mode", "multi")).lower()
        if mode == "simple":
            policy = TagPolicy(
                exclusive=False,
                clear_all_known_on_unmapped=_as_bool(doc.get("remove_on_unmapped"), False),
                tag_name=str(doc.get("tag_name") or DEFAULT_TAG_NAME),
            )
        else:
            policy = TagPolicy(
                exclusive=_as_bool(doc.get("exclusive"), True),
                clear_all_known_on_unmapped=_as_bool(doc.get("clear_all_known_on_unmapped"), False),
            )

        delay_ms = _as_int(doc.get("message_delay_ms"), None)
        if config is not None and config.message_delay_ms is not None:
            delay_ms = config.message_delay_ms
        if delay_ms is None:
            delay_ms = ticks_to_ms(_as_int(doc.get("message_delay_ticks"), MESSAGE_DELAY_TICKS))
        delay_ms = max(0, delay_ms)

        ttl_ms = _as_int(doc.get("pending_ip_ttl_ms"), PENDING_TTL_MS)
        if config is not None and config.pending_ttl_ms is not None:
            ttl_ms = config.pending_ttl_ms
        ttl_ms = max(PENDING_TTL_FLOOR_MS, ttl_ms)
        return cls(policy, delay_ms, ttl_ms)


class ConfigLoader:
    @staticmethod
    def load_from_args(args) -> TaggerConfig:
        config = TaggerConfig()
        config.host = args.host
        config.port = args.port
        config.config_file = args.config
        config.log_access_file = args.log_access
        config.log_error_file = args.log_error
        config.stats_file = args.stats_file
        config.quiet = args.quiet
        if args.pending_ttl_ms is not None:
            config.pending_ttl_ms = args.pending_ttl_ms
        if args.message_delay_ms is not None:
            config.message_delay_ms = args.message_delay_ms
        return config

    @staticmethod
    def read_document(path: Optional[str]):
        """Decode the config document; raises on a missing or broken file."""
        if not path:
            return {}
        doc = load_json_file(path)
        if not isinstance(doc, dict):
            raise ValueError(f"Config {path} must hold a JSON object")
        return doc


def _as_bool(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(value, default):
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
