"""Collector worker: polls CloudStack for new events and fleet usage."""
from __future__ import annotations

import argparse
import asyncio
import copy
import logging
import signal
import time
from typing import Callable

from cloudstack_node.clients.cloudstack import CloudStackClient
from cloudstack_node.config.runtime import CollectorSettings, ConfigError, validate_interval
from cloudstack_node.db import DBCheckpointStore, create_session, create_state_engine
from cloudstack_node.entities.event import Checkpoint
from cloudstack_node.interfaces.checkpoint_store import CheckpointStore
from cloudstack_node.interfaces.emitter import Emitter
from cloudstack_node.services.emitters import JsonLinesEmitter
from cloudstack_node.services.event_fetcher import EventFetcher
from cloudstack_node.services.usage_aggregator import UsageAggregator


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


class CollectorService:
    def __init__(
        self,
        fetcher: EventFetcher,
        aggregator: UsageAggregator,
        store: CheckpointStore,
        emitter: Emitter,
        *,
        interval_seconds: float,
        domain_id: str | None = None,
        tag: str = "cloudstack",
        debug_mode: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        validate_interval(interval_seconds, debug_mode)

        self.fetcher = fetcher
        self.aggregator = aggregator
        self.store = store
        self.emitter = emitter
        self.interval_seconds = interval_seconds
        self.domain_id = domain_id
        self.event_tag = f"{tag}.event"
        self.usages_tag = f"{tag}.usages"
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self.stop_event = asyncio.Event()

        # Load failures are fatal: the worker must not start on unreadable state.
        self.checkpoint: Checkpoint | None = store.load_checkpoint()
        baseline = store.load_baseline()
        self.baseline_keys: frozenset[str] = frozenset(baseline)

        self._unsaved_checkpoint: Checkpoint | None = None
        self._unsaved_baseline: dict[str, int] | None = None
        self.tick_count = 0

    async def run(self, *, handle_signals: bool = True) -> None:
        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM) if handle_signals else ()
        for sig in signals:
            loop.add_signal_handler(sig, self.stop_event.set)
        try:
            await self._loop()
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)

    async def _loop(self) -> None:
        self.logger.info(
            "cloudstack collector started (interval=%ss, domain=%s, checkpoint=%s)",
            self.interval_seconds,
            self.domain_id or "<all>",
            self.checkpoint.reference_instant.isoformat() if self.checkpoint else "<none>",
        )
        while not self.stop_event.is_set():
            started = time.monotonic()
            # The tick runs to completion even if shutdown is requested meanwhile.
            await asyncio.to_thread(self.run_once)

            sleep_duration = max(self.interval_seconds - (time.monotonic() - started), 0)
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=sleep_duration)
            except asyncio.TimeoutError:
                pass
        self.logger.info("cloudstack collector stopped after %d ticks", self.tick_count)

    async def shutdown(self) -> None:
        self.stop_event.set()

    def run_once(self) -> None:
        now = int(self.clock())
        self._flush_unsaved()

        try:
            self.collect_events(now)
        except Exception:
            self.logger.exception("event collection failed; checkpoint left unchanged")

        try:
            self.collect_usages(now)
        except Exception:
            self.logger.exception("usage collection failed; baseline left unchanged")

        self.tick_count += 1

    def collect_events(self, now: int) -> int:
        result = self.fetcher.fetch_new(self.checkpoint, self.domain_id)

        for event in result.new_events:
            self.emitter.emit(self.event_tag, event.epoch, copy.deepcopy(event.attributes))
        self.emitter.emit(self.usages_tag, now, {"events_flow": len(result.new_events)})

        if result.advanced and result.checkpoint is not None:
            self.checkpoint = result.checkpoint
            self._unsaved_checkpoint = result.checkpoint
            self._flush_unsaved()
        return len(result.new_events)

    def collect_usages(self, now: int) -> dict[str, int]:
        result = self.aggregator.snapshot(self.baseline_keys, self.domain_id)
        self.emitter.emit(self.usages_tag, now, result.usage)

        self.baseline_keys = result.baseline_keys
        self._unsaved_baseline = dict(result.usage)
        self._flush_unsaved()
        return result.usage

    def _flush_unsaved(self) -> None:
        if self._unsaved_checkpoint is not None:
            try:
                self.store.save_checkpoint(self._unsaved_checkpoint)
                self._unsaved_checkpoint = None
            except Exception as exc:
                self.logger.warning("saving checkpoint failed, retrying next tick: %s", exc)

        if self._unsaved_baseline is not None:
            try:
                self.store.save_baseline(self._unsaved_baseline)
                self._unsaved_baseline = None
            except Exception as exc:
                self.logger.warning("saving usage baseline failed, retrying next tick: %s", exc)


def build_service(settings: CollectorSettings | None = None) -> CollectorService:
    settings = settings or CollectorSettings.from_env()
    session = create_session(create_state_engine(settings.state_db_url))
    client = CloudStackClient.from_settings(settings)

    return CollectorService(
        fetcher=EventFetcher(client),
        aggregator=UsageAggregator(client),
        store=DBCheckpointStore(session, namespace=settings.tag),
        emitter=JsonLinesEmitter(path=settings.emit_path),
        interval_seconds=settings.interval_seconds,
        domain_id=settings.domain_id,
        tag=settings.tag,
        debug_mode=settings.debug_mode,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloudstack-node", description="CloudStack event and usage collector")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(getattr(logging, str(args.log_level).upper(), logging.INFO))
    logger = logging.getLogger(__name__)
    logger.info("cloudstack collector bootstrap")

    try:
        settings = CollectorSettings.from_env()
    except ConfigError as exc:
        logger.error("configuration error: %s", exc)
        return 2

    try:
        service = build_service(settings)
    except ConfigError as exc:
        logger.error("configuration error: %s", exc)
        return 2
    except Exception:
        logger.exception("could not load collector state")
        return 1

    logger.info("listening cloudstack api on %s", settings.host)
    if args.once:
        service.run_once()
        return 0

    asyncio.run(service.run())
    return 0


def entrypoint() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    entrypoint()
