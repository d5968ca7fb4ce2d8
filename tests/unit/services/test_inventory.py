"""
Tests for inventory loading and the inventory watcher.
"""

import os
import time
from unittest.mock import Mock

import pytest

from journal_mirror.services import HostIdentity, InventoryWatcher, ReachabilityEvent, load_inventory
from journal_mirror.services.inventory import matches_selector, parse_label_selector
from tests.fixtures.fakes import wait_until

WEB = HostIdentity("prod", "web-1")
DB = HostIdentity("prod", "db-1")


def rewrite(path, content):
    """Replace the file content and move its mtime forward."""
    stat = path.stat() if path.exists() else None
    path.write_text(content)
    if stat is not None:
        bumped = stat.st_mtime_ns + 1_000_000_000
        os.utime(path, ns=(bumped, bumped))


class TestLabelSelector:
    def test_parse(self):
        assert parse_label_selector("role=web, zone = a") == {"role": "web", "zone": "a"}

    def test_empty_selector_matches_everything(self):
        assert parse_label_selector("") == {}
        assert parse_label_selector(None) == {}
        assert matches_selector({"role": "db"}, {})

    @pytest.mark.parametrize("selector", ["role", "=web", "role=web=x", "role=web,,"])
    def test_invalid_selector(self, selector):
        with pytest.raises(ValueError, match="Invalid label selector"):
            parse_label_selector(selector)

    def test_matches(self):
        assert matches_selector({"role": "web", "zone": "a"}, {"role": "web"})
        assert not matches_selector({"role": "db"}, {"role": "web"})
        assert not matches_selector({}, {"role": "web"})


class TestLoadInventory:
    def test_load(self, inventory_file):
        hosts = load_inventory(inventory_file)

        assert set(hosts) == {WEB, DB}
        assert hosts[WEB].address == "10.0.0.5"
        assert hosts[WEB].port == 22
        assert hosts[WEB].labels == {"role": "web"}
        assert hosts[DB].port == 2222

    def test_defaults(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text('[[hosts]]\nname = "web-1"\n')

        hosts = load_inventory(path, default_port=2200)

        entry = hosts[HostIdentity("default", "web-1")]
        assert entry.address is None
        assert entry.port == 2200
        assert entry.labels == {}

    def test_empty_file(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text("")
        assert load_inventory(path) == {}

    def test_entry_without_name(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text('[[hosts]]\naddress = "10.0.0.5"\n')

        with pytest.raises(ValueError, match="without a name"):
            load_inventory(path)

    def test_invalid_name(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text('[[hosts]]\nname = "../../etc/passwd"\n')

        with pytest.raises(ValueError, match="Invalid host name"):
            load_inventory(path)

    @pytest.mark.parametrize(
        "content, message",
        [
            ('[[hosts]]\nname = "web-1"\nlabels = "web"\n', "Labels of web-1 must be a table"),
            ('hosts = ["web-1"]\n', "must be a table"),
        ],
    )
    def test_entry_that_is_not_a_table(self, temp_dir, content, message):
        path = temp_dir / "inventory.toml"
        path.write_text(content)

        with pytest.raises(ValueError, match=message):
            load_inventory(path)

    def test_duplicate_entries_keep_last(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text(
            '[[hosts]]\nname = "web-1"\naddress = "10.0.0.5"\n\n'
            '[[hosts]]\nname = "web-1"\naddress = "10.0.0.7"\n'
        )

        hosts = load_inventory(path)

        assert hosts[HostIdentity("default", "web-1")].address == "10.0.0.7"


class TestInventoryWatcher:
    """Test suite for InventoryWatcher."""

    def setup_method(self):
        self.scheduler = Mock()

    def submitted(self):
        return [c.args[0] for c in self.scheduler.submit.call_args_list]

    def test_first_poll_submits_every_host(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler)

        assert watcher.poll() is True

        assert sorted(self.submitted(), key=lambda e: e.host) == [
            ReachabilityEvent(DB, "10.0.0.6", 2222),
            ReachabilityEvent(WEB, "10.0.0.5", 22),
        ]
        assert set(watcher.hosts) == {WEB, DB}

    def test_unchanged_file_is_not_reloaded(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler)
        watcher.poll()
        self.scheduler.reset_mock()

        assert watcher.poll() is False
        self.scheduler.submit.assert_not_called()

    def test_changed_address_is_submitted(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler)
        watcher.poll()
        self.scheduler.reset_mock()

        rewrite(
            inventory_file,
            inventory_file.read_text().replace('address = "10.0.0.5"', 'address = "10.0.0.50"'),
        )

        assert watcher.poll() is True
        assert self.submitted() == [ReachabilityEvent(WEB, "10.0.0.50", 22)]
        self.scheduler.retire.assert_not_called()

    def test_removed_host_is_retired(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler)
        watcher.poll()
        self.scheduler.reset_mock()

        rewrite(inventory_file, '[[hosts]]\nnamespace = "prod"\nname = "web-1"\naddress = "10.0.0.5"\n')

        watcher.poll()
        self.scheduler.retire.assert_called_once_with(DB)
        self.scheduler.submit.assert_not_called()

    def test_host_without_address_waits_for_one(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text('[[hosts]]\nnamespace = "prod"\nname = "web-1"\n')
        watcher = InventoryWatcher(path, self.scheduler)

        watcher.poll()
        self.scheduler.submit.assert_not_called()

        rewrite(path, '[[hosts]]\nnamespace = "prod"\nname = "web-1"\naddress = "10.0.0.5"\n')
        watcher.poll()

        assert self.submitted() == [ReachabilityEvent(WEB, "10.0.0.5", 22)]

    def test_missing_file_keeps_previous_hosts(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler)
        watcher.poll()
        self.scheduler.reset_mock()

        inventory_file.unlink()

        assert watcher.poll() is False
        self.scheduler.retire.assert_not_called()
        assert set(watcher.hosts) == {WEB, DB}

    def test_malformed_file_keeps_previous_hosts(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler)
        watcher.poll()
        self.scheduler.reset_mock()

        rewrite(inventory_file, "[[hosts]\nname = ")

        assert watcher.poll() is False
        self.scheduler.retire.assert_not_called()
        assert set(watcher.hosts) == {WEB, DB}

    def test_non_table_labels_keep_previous_hosts(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler)
        watcher.poll()
        self.scheduler.reset_mock()

        rewrite(
            inventory_file,
            '[[hosts]]\nnamespace = "prod"\nname = "web-1"\naddress = "10.0.0.5"\nlabels = "web"\n',
        )

        assert watcher.poll() is False
        self.scheduler.submit.assert_not_called()
        self.scheduler.retire.assert_not_called()
        assert set(watcher.hosts) == {WEB, DB}

    def test_start_survives_a_malformed_entry(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text('[[hosts]]\nname = "web-1"\naddress = "10.0.0.5"\nlabels = "web"\n')
        watcher = InventoryWatcher(path, self.scheduler, poll_interval=0.05)

        watcher.start()
        try:
            assert watcher.hosts == {}
        finally:
            watcher.stop()

        self.scheduler.submit.assert_not_called()

    def test_label_selector_filters_hosts(self, inventory_file):
        watcher = InventoryWatcher(inventory_file, self.scheduler, label_selector="role=db")

        watcher.poll()

        assert self.submitted() == [ReachabilityEvent(DB, "10.0.0.6", 2222)]
        assert set(watcher.hosts) == {DB}

    def test_invalid_label_selector(self, inventory_file):
        with pytest.raises(ValueError):
            InventoryWatcher(inventory_file, self.scheduler, label_selector="role")

    def test_background_polling(self, temp_dir):
        path = temp_dir / "inventory.toml"
        path.write_text("")
        watcher = InventoryWatcher(path, self.scheduler, poll_interval=0.02)

        watcher.start()
        try:
            time.sleep(0.05)
            rewrite(path, '[[hosts]]\nnamespace = "prod"\nname = "web-1"\naddress = "10.0.0.5"\n')
            assert wait_until(lambda: self.scheduler.submit.called)
        finally:
            watcher.stop()

        assert self.submitted() == [ReachabilityEvent(WEB, "10.0.0.5", 22)]
