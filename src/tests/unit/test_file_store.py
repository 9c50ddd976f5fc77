"""Unit tests for FileStore."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from azurefilebroker.adapters.store import FileStore
from azurefilebroker.core.errors import BindingNotFoundError, InstanceNotFoundError, StoreError
from azurefilebroker.core.models import BindDetails, FileShare, ServiceInstance


def make_instance(**fields) -> ServiceInstance:
    values = {
        "subscription_id": "sub",
        "resource_group_name": "rg",
        "storage_account_name": "acct",
        "organization_guid": "org",
        "space_guid": "space",
    }
    values.update(fields)
    return ServiceInstance(**values)


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state.json"


@pytest.fixture
def store(state_file: Path) -> FileStore:
    store = FileStore(state_file)
    store.restore()
    return store


class TestRestore:
    def test_missing_file_is_empty_state(self, state_file: Path) -> None:
        store = FileStore(state_file)

        store.restore()

        assert not store.is_instance_conflict("instance-1")
        assert not state_file.exists()

    def test_corrupt_file(self, state_file: Path) -> None:
        state_file.write_text("{not json")
        store = FileStore(state_file)

        with pytest.raises(StoreError):
            store.restore()

    def test_round_trip_through_disk(self, store: FileStore, state_file: Path) -> None:
        """A fresh store sees everything a previous process wrote."""
        store.create_instance("instance-1", make_instance())
        store.save_file_share(
            FileShare(instance_id="instance-1", file_share_name="data", count=2, is_created=True)
        )
        store.create_binding(
            "binding-1", BindDetails(app_guid="app", raw_parameters={"share": "data"})
        )

        reopened = FileStore(state_file)
        reopened.restore()

        instance = reopened.retrieve_instance("instance-1")
        assert instance.file_shares["data"].count == 2
        assert instance.file_shares["data"].is_created is True
        assert reopened.retrieve_binding("binding-1").raw_parameters == {"share": "data"}


class TestSave:
    def test_every_mutation_is_flushed(self, store: FileStore, state_file: Path) -> None:
        store.create_instance("instance-1", make_instance())

        document = json.loads(state_file.read_text())
        assert set(document) == {"instances", "bindings"}
        assert document["instances"]["instance-1"]["storage_account_name"] == "acct"

    def test_shares_embedded_in_instance(self, store: FileStore, state_file: Path) -> None:
        store.create_instance("instance-1", make_instance())
        store.save_file_share(FileShare(instance_id="instance-1", file_share_name="data", count=1))

        document = json.loads(state_file.read_text())
        assert document["instances"]["instance-1"]["file_shares"]["data"]["count"] == 1

    def test_no_temp_files_left(self, store: FileStore, state_file: Path) -> None:
        store.create_instance("instance-1", make_instance())
        store.delete_instance("instance-1")

        assert [p.name for p in state_file.parent.iterdir()] == ["state.json"]

    def test_unwritable_location(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = FileStore(blocker / "state.json")

        with pytest.raises(StoreError):
            store.create_instance("instance-1", make_instance())

        assert not store.is_instance_conflict("instance-1")


class TestFailedWrite:
    """A mutation whose write fails leaves memory matching the document on disk."""

    @pytest.fixture
    def disk_full(self, bound: FileStore):
        """Fail every write after the fixture state is on disk."""
        with patch("azurefilebroker.adapters.store.file.os.replace") as replace:
            replace.side_effect = OSError("disk full")
            yield replace

    @pytest.fixture
    def bound(self, store: FileStore) -> FileStore:
        store.create_instance("instance-1", make_instance())
        store.save_file_share(FileShare(instance_id="instance-1", file_share_name="data", count=1))
        store.create_binding("binding-1", BindDetails(app_guid="app", raw_parameters={"share": "data"}))
        return store

    def test_share_count_not_incremented(
        self, bound: FileStore, state_file: Path, disk_full
    ) -> None:
        with pytest.raises(StoreError):
            bound.save_file_share(
                FileShare(instance_id="instance-1", file_share_name="data", count=2)
            )

        assert bound.retrieve_file_share("instance-1", "data").count == 1
        on_disk = json.loads(state_file.read_text())
        assert on_disk["instances"]["instance-1"]["file_shares"]["data"]["count"] == 1

    def test_binding_not_recorded(self, bound: FileStore, disk_full) -> None:
        with pytest.raises(StoreError):
            bound.create_binding("binding-2", BindDetails(app_guid="app"))

        assert not bound.is_binding_conflict("binding-2")

    def test_deletes_not_applied(self, bound: FileStore, disk_full) -> None:
        with pytest.raises(StoreError):
            bound.delete_binding("binding-1")
        with pytest.raises(StoreError):
            bound.delete_file_share("instance-1", "data")
        with pytest.raises(StoreError):
            bound.delete_instance("instance-1")

        assert bound.is_binding_conflict("binding-1")
        assert bound.retrieve_file_share("instance-1", "data").count == 1
        assert bound.is_instance_conflict("instance-1")

    def test_update_not_applied(self, bound: FileStore, disk_full) -> None:
        with pytest.raises(StoreError):
            bound.update_instance("instance-1", make_instance(use_https=False))

        assert bound.retrieve_instance("instance-1").use_https is True


class TestInstances:
    def test_retrieve_unknown(self, store: FileStore) -> None:
        with pytest.raises(InstanceNotFoundError):
            store.retrieve_instance("missing")

    def test_retrieve_returns_copy(self, store: FileStore) -> None:
        """Mutating a retrieved instance does not change the stored one."""
        store.create_instance("instance-1", make_instance())

        instance = store.retrieve_instance("instance-1")
        instance.storage_account_name = "changed"

        assert store.retrieve_instance("instance-1").storage_account_name == "acct"

    def test_update(self, store: FileStore) -> None:
        store.create_instance("instance-1", make_instance())

        store.update_instance("instance-1", make_instance(use_https=False))

        assert store.retrieve_instance("instance-1").use_https is False

    def test_update_unknown(self, store: FileStore) -> None:
        with pytest.raises(InstanceNotFoundError):
            store.update_instance("missing", make_instance())

    def test_delete_unknown(self, store: FileStore) -> None:
        with pytest.raises(InstanceNotFoundError):
            store.delete_instance("missing")

    def test_conflict(self, store: FileStore) -> None:
        store.create_instance("instance-1", make_instance())

        assert store.is_instance_conflict("instance-1")
        assert not store.is_instance_conflict("instance-2")


class TestBindings:
    def test_crud(self, store: FileStore) -> None:
        details = BindDetails(app_guid="app", raw_parameters='{"share": "data"}')

        store.create_binding("binding-1", details)
        assert store.retrieve_binding("binding-1") == details
        assert store.is_binding_conflict("binding-1")

        store.delete_binding("binding-1")
        assert not store.is_binding_conflict("binding-1")

    def test_delete_unknown(self, store: FileStore) -> None:
        with pytest.raises(BindingNotFoundError):
            store.delete_binding("missing")


class TestFileShares:
    def test_absent_share(self, store: FileStore) -> None:
        store.create_instance("instance-1", make_instance())

        assert store.retrieve_file_share("instance-1", "data") is None
        assert store.retrieve_file_share("missing", "data") is None

    def test_save_and_delete(self, store: FileStore) -> None:
        store.create_instance("instance-1", make_instance())
        share = FileShare(instance_id="instance-1", file_share_name="data", count=1)

        store.save_file_share(share)
        share.count = 3
        store.save_file_share(share)
        assert store.retrieve_file_share("instance-1", "data").count == 3

        store.delete_file_share("instance-1", "data")
        assert store.retrieve_file_share("instance-1", "data") is None

    def test_save_for_unknown_instance(self, store: FileStore) -> None:
        with pytest.raises(InstanceNotFoundError):
            store.save_file_share(FileShare(instance_id="missing", file_share_name="data"))

    def test_locks_are_noops(self, store: FileStore) -> None:
        store.acquire_lock("instance-1-data", 30)
        store.acquire_lock("instance-1-data", 30)
        store.release_lock("instance-1-data")
