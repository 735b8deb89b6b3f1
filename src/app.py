"""Application entrypoint for the DomainTags bridge."""

import argparse
import asyncio
import logging

try:
    import uvloop
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
except Exception:
    pass

from config import ConfigLoader
from constants import DEFAULT_HOST, DEFAULT_PORT, __version__
from logger import TaggerLogger
from scheduler import AsyncioScheduler
from server import BridgeLabelStore, EventServer, SessionCommandSink
from stats import Statistics
from tagger import DomainTagger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tag sessions by the hostname they connected with")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Bridge host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Bridge port")
    parser.add_argument("--config", required=False, help="Path to the JSON config with domain rules")
    parser.add_argument("--log-access", required=False, help="Path to the decision log")
    parser.add_argument("--log-error", required=False, help="Path to log file for errors and warnings")
    parser.add_argument("--stats-file", required=False, help="Path to stats JSON file")
    parser.add_argument("--pending-ttl-ms", type=int, required=False, help="Override pending_ip_ttl_ms")
    parser.add_argument("--message-delay-ms", type=int, required=False, help="Override the message delay")
    parser.add_argument("-q", "--quiet", action="store_true", help="Remove UI output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_tagger(config, logger, statistics, loop) -> DomainTagger:
    label_store = BridgeLabelStore()
    command_sink = SessionCommandSink(label_store)
    return DomainTagger(
        label_store,
        command_sink,
        AsyncioScheduler(loop, logger),
        logger,
        statistics,
        document_source=lambda: ConfigLoader.read_document(config.config_file),
        config=config,
    )


async def run() -> None:
    logging.getLogger("asyncio").setLevel(logging.CRITICAL)
    args = build_parser().parse_args()

    config = ConfigLoader.load_from_args(args)
    logger = TaggerLogger(config.log_access_file, config.log_error_file, config.quiet)
    stats = Statistics()
    logger.set_error_counter_callback(stats.increment_errors)

    tagger = build_tagger(config, logger, stats, asyncio.get_running_loop())
    server = EventServer(config, tagger, tagger.applicator.label_store, stats, logger)
    try:
        await server.run()
    except asyncio.CancelledError:
        await server.shutdown()
        logger.info("\033[92m[INFO]:\033[97m Shutting down bridge...")
        raise SystemExit(0)


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
