"""
Integration Tests for the station-sync CLI
"""

import json

import pytest
from click.testing import CliRunner

from station_sync.cli import cli
from station_sync.core.local_store import LocalStore


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ('STATION_DATA_DIR', 'STATION_CACHE_FILE', 'STATION_API_TOKEN'):
        monkeypatch.delenv(name, raising=False)

    path = tmp_path / 'station.yaml'
    path.write_text(
        f"store:\n"
        f"  data_dir: {tmp_path / 'data'}\n"
        f"logging:\n"
        f"  console: false\n",
        encoding='utf-8'
    )
    return path


@pytest.fixture
def seeded_cache(tmp_path, make_item):
    store = LocalStore(path=tmp_path / 'data' / 'rfid-cache.sqlite').open()
    store.upsert_items([make_item(1), make_item(2)])
    store.flush()
    return store


class TestCli:

    def test_lookup_found(self, config_file, seeded_cache):
        result = CliRunner().invoke(cli, ['--config', str(config_file), 'lookup', 'e200001700000001'])

        assert result.exit_code == 0
        assert json.loads(result.output)['id'] == 'item-1'

    def test_lookup_missing(self, config_file, seeded_cache):
        result = CliRunner().invoke(cli, ['--config', str(config_file), 'lookup', 'NOPE'])

        assert result.exit_code == 1

    def test_stats(self, config_file, seeded_cache):
        result = CliRunner().invoke(cli, ['--config', str(config_file), 'stats'])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data['items_count'] == 2
        assert len(data['sample_rfids']) == 2

    def test_drain_without_pending_operations(self, config_file):
        result = CliRunner().invoke(cli, ['--config', str(config_file), 'drain', '--token', 't'])

        assert result.exit_code == 0
        assert json.loads(result.output) == {'processed': 0, 'failed': 0, 'remaining': 0}
