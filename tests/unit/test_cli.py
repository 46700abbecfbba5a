"""Tests for the command-line entrypoint."""
from unittest.mock import AsyncMock, patch

import pytest

from careersync import __main__ as cli
from careersync.models.sync import PersistedSyncStatus
from careersync.store import SqlStatusStore


class TestParser:
    def test_sync_flags(self):
        args = cli.build_parser().parse_args(["sync", "--live", "--no-delay", "--wait"])
        assert (args.command, args.live, args.no_delay, args.wait) == ("sync", True, True, True)
        assert args.diagnostics is False

    def test_dataset_choices(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["dataset", "v7"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestDispatch:
    def test_sync(self):
        with patch.object(cli, "_run_sync", new=AsyncMock(return_value=0)) as run:
            assert cli.main(["sync", "--diagnostics"]) == 0
        run.assert_awaited_once_with(False, False, False, True)

    def test_dataset(self):
        with patch.object(cli, "_run_dataset", new=AsyncMock(return_value=1)) as run:
            assert cli.main(["dataset", "v2", "--yes"]) == 1
        run.assert_awaited_once_with("v2", True)

    def test_failed_reset_exit_code(self):
        with patch.object(cli, "_run_reset", new=AsyncMock(return_value=1)):
            assert cli.main(["reset"]) == 1


class TestSettingsOverride:
    def test_no_delay_zeroes_dwell(self, settings):
        paced = settings.model_copy(update={"fetching_dwell_seconds": 0.8})
        with patch("careersync.config.get_settings", return_value=paced):
            fast = cli._settings(no_delay=True)
        assert fast.fetching_dwell_seconds == 0.0
        assert fast.stories_live_dwell_seconds == 0.0
        assert paced.fetching_dwell_seconds == 0.8


class TestLocalCommands:
    def test_status_never_synced(self, engine, capsys):
        with patch("careersync.db.engine.get_engine", return_value=engine):
            assert cli.main(["status"]) == 0
        out = capsys.readouterr().out
        assert "Never synced." in out
        assert "seeded" in out

    def test_status_after_sync(self, engine, capsys):
        SqlStatusStore(engine).set_sync_status(
            PersistedSyncStatus(
                has_synced=True,
                activity_count=45,
                entry_count=8,
                temporal_entry_count=5,
                cluster_entry_count=3,
            )
        )
        with patch("careersync.db.engine.get_engine", return_value=engine):
            cli.main(["status"])
        out = capsys.readouterr().out
        assert "Activities: 45" in out
        assert "(5 by time, 3 by cluster)" in out

    def test_mode(self, engine):
        with patch("careersync.db.engine.get_engine", return_value=engine):
            assert cli.main(["mode", "live"]) == 0
        assert SqlStatusStore(engine).mode.value == "live"
