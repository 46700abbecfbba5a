"""
Command-line entrypoint.

Usage:
    python -m careersync sync [--live] [--no-delay] [--wait] [--diagnostics]
    python -m careersync reset [--no-delay]
    python -m careersync clear
    python -m careersync status
    python -m careersync mode {seeded,live}
    python -m careersync dataset {v1,v2} [--yes]
    python -m careersync daemon       # daily scheduled sync
    uvicorn careersync.api.main:app --host 0.0.0.0 --port 8000  # progress API
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)

PHASE_LABELS = {
    "fetching": "Fetching activities...",
    "activities-synced": "Activities imported",
    "generating-stories": "Generating draft stories...",
    "complete": "Sync complete",
}


def _settings(no_delay: bool = False):
    from careersync.config import get_settings

    settings = get_settings()
    if no_delay:
        settings = settings.model_copy(
            update={
                "fetching_dwell_seconds": 0.0,
                "activities_dwell_seconds": 0.0,
                "stories_dwell_seconds": 0.0,
                "stories_live_dwell_seconds": 0.0,
            }
        )
    return settings


def _printing_callbacks():
    from careersync.sync.orchestrator import SyncCallbacks

    def on_state_update(state) -> None:
        print(f"• {PHASE_LABELS[state.phase.value]}")
        if state.phase.value == "activities-synced":
            for integration in state.integrations:
                print(f"    {integration.name}: {integration.item_count} {integration.item_label}")
        elif state.phase.value == "generating-stories":
            for entry in state.entries:
                print(f"    [{entry.grouping_method}] {entry.title} ({entry.activity_count} activities)")

    def on_complete(result) -> None:
        print(
            f"\n✅ {result.activity_count} activities → {result.entry_count} entries "
            f"({result.temporal_entry_count} by time, {result.cluster_entry_count} by cluster)"
        )
        if result.narratives_generating_in_background:
            print("   Narratives are still being written in the background.")

    def on_error(error) -> None:
        print(f"\n❌ Sync failed: {error.user_message}")
        if error.user_message != str(error):
            print(f"   ({error})")

    return SyncCallbacks(on_state_update, on_complete, on_error)


async def _run_sync(live: bool, no_delay: bool, wait: bool, dump_diagnostics: bool) -> int:
    from careersync.diagnostics import get_reporter
    from careersync.models.sync import SyncMode
    from careersync.sync.service import build_sync_service

    service = build_sync_service(_settings(no_delay))
    try:
        mode = SyncMode.LIVE if live else None
        result = await service.run(_printing_callbacks(), mode=mode)
        if result is None:
            return 1
        if wait and service.poller is not None:
            print("Waiting for narratives...")
            status = await service.poller.wait()
            print(f"Narratives: {status.value}")
        return 0
    finally:
        await service.close()
        if dump_diagnostics:
            print(get_reporter().export_all())


async def _run_reset(no_delay: bool) -> int:
    from careersync.errors import SyncError
    from careersync.sync.service import build_sync_service

    service = build_sync_service(_settings(no_delay))
    try:
        try:
            result = await service.reset(_printing_callbacks())
        except SyncError as exc:
            print(f"❌ Reset failed: {exc.user_message}")
            return 1
        return 0 if result is not None else 1
    finally:
        await service.close()


async def _run_clear() -> int:
    from careersync.errors import SyncError
    from careersync.sync.service import build_sync_service

    service = build_sync_service()
    try:
        try:
            await service.clear()
        except SyncError as exc:
            print(f"❌ Clear failed: {exc.user_message}")
            return 1
        print("✅ Sync data cleared.")
        return 0
    finally:
        await service.close()


async def _run_dataset(dataset: str, assume_yes: bool) -> int:
    from careersync.errors import SyncError
    from careersync.sync.service import build_sync_service

    def confirm() -> bool:
        if assume_yes:
            return True
        answer = input(
            "Seeded data from the current dataset exists and will be cleared. Continue? [y/N] "
        )
        return answer.strip().lower() == "y"

    service = build_sync_service()
    try:
        try:
            switched = await service.switch_dataset(dataset, confirm=confirm)
        except SyncError as exc:
            print(f"❌ Could not clear existing data: {exc.user_message}")
            return 1
        if not switched:
            print("Dataset unchanged.")
            return 1
        print(f"Dataset set to {dataset}. Run `python -m careersync sync` to load it.")
        return 0
    finally:
        await service.close()


def _show_status() -> int:
    from careersync.db.engine import get_engine
    from careersync.store import SqlStatusStore

    store = SqlStatusStore(get_engine())
    status = store.get_sync_status()
    print(f"Mode:     {store.mode.value}")
    print(f"Dataset:  {store.dataset}")
    if not status or not status.has_synced:
        print("Never synced.")
        return 0
    print(f"Last sync: {status.last_sync_at.isoformat() if status.last_sync_at else 'unknown'}")
    print(f"Activities: {status.activity_count}")
    print(
        f"Entries:    {status.entry_count} "
        f"({status.temporal_entry_count} by time, {status.cluster_entry_count} by cluster)"
    )
    return 0


def _set_mode(mode: str) -> int:
    from careersync.db.engine import get_engine
    from careersync.models.sync import SyncMode
    from careersync.store import SqlStatusStore

    store = SqlStatusStore(get_engine())
    store.set_mode(SyncMode(mode))
    print(f"Mode set to {mode}.")
    return 0


async def _run_daemon() -> None:
    from careersync.config import get_settings
    from careersync.scheduler.jobs import build_scheduler
    from careersync.sync.service import build_sync_service

    settings = get_settings()
    if not settings.access_token:
        logger.error("ACCESS_TOKEN is not set; scheduled syncs would fail.")
        sys.exit(1)

    service = build_sync_service(_settings(no_delay=True))
    scheduler = build_scheduler(service)
    scheduler.start()
    logger.info("Scheduler started (daily sync at %02d:00)", settings.auto_sync_hour)

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        await service.close()
        logger.info("Goodbye.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="careersync", description="Activity sync client")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Import activities and draft entries")
    sync.add_argument("--live", action="store_true", help="Use connected tools regardless of mode")
    sync.add_argument("--no-delay", action="store_true", help="Skip phase pacing delays")
    sync.add_argument("--wait", action="store_true", help="Wait for background narratives")
    sync.add_argument(
        "--diagnostics", action="store_true", help="Print captured errors and request traces"
    )

    reset = sub.add_parser("reset", help="Clear all synced data, then sync again")
    reset.add_argument("--no-delay", action="store_true", help="Skip phase pacing delays")

    sub.add_parser("clear", help="Delete all synced activities and entries")
    sub.add_parser("status", help="Show the last sync outcome")

    mode = sub.add_parser("mode", help="Switch between seeded and live mode")
    mode.add_argument("mode", choices=["seeded", "live"])

    dataset = sub.add_parser("dataset", help="Select the seeded dataset")
    dataset.add_argument("dataset", choices=["v1", "v2"])
    dataset.add_argument("--yes", action="store_true", help="Clear existing data without asking")

    sub.add_parser("daemon", help="Run the daily scheduled sync")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "sync":
        return asyncio.run(_run_sync(args.live, args.no_delay, args.wait, args.diagnostics))
    if args.command == "reset":
        return asyncio.run(_run_reset(args.no_delay))
    if args.command == "clear":
        return asyncio.run(_run_clear())
    if args.command == "dataset":
        return asyncio.run(_run_dataset(args.dataset, args.yes))
    if args.command == "status":
        return _show_status()
    if args.command == "mode":
        return _set_mode(args.mode)
    asyncio.run(_run_daemon())
    return 0


if __name__ == "__main__":
    sys.exit(main())
