import threading
from dataclasses import replace
from datetime import date
from pathlib import Path

import pytest

from roster_sync.config import Config
from roster_sync.directory.admin import account_from_api
from roster_sync.engine.models import DirectoryAccount, DirectoryDevice, ExternalId, OrgNode, StudentRecord
from roster_sync.engine.paths import OrgPathDeriver

FIXTURES_DIR = Path(__file__).parent / "fixtures"

# Fall term: 2028 is high school, 2031 middle, 2034 elementary, 2024 has graduated
AS_OF = date(2024, 9, 1)


class FakeDirectory:
    """In-memory stand-in for DirectoryService that applies every call to its state."""

    def __init__(self, accounts=(), devices=(), org_nodes=()):
        self.accounts = {a.primary_email.lower(): a for a in accounts}
        self.devices = {d.serial_number: d for d in devices}
        self.org_nodes = {n.org_unit_path: n for n in org_nodes}
        self.calls = []
        self.fail_on = set()
        self._lock = threading.Lock()

    def _record(self, name, key):
        self.calls.append((name, key))
        if key in self.fail_on:
            raise RuntimeError(f"{name} failed for {key}")

    def list_accounts(self, path_filter=None):
        return [
            a for a in self.accounts.values()
            if not path_filter or a.org_unit_path.startswith(path_filter)
        ]

    def create_account(self, draft):
        self._record("create_account", draft["primaryEmail"])
        account = account_from_api(draft)
        self.accounts[account.primary_email.lower()] = account
        return account

    def update_account(self, key, partial):
        self._record("update_account", key)
        changes = {}
        if "orgUnitPath" in partial:
            changes["org_unit_path"] = partial["orgUnitPath"]
        if "suspended" in partial:
            changes["suspended"] = partial["suspended"]
        if "externalIds" in partial:
            changes["external_ids"] = [
                ExternalId(e["value"], e["type"], e.get("customType")) for e in partial["externalIds"]
            ]
        # Executor threads may update the same account within one batch
        with self._lock:
            account = replace(self.accounts[key.lower()], **changes)
            self.accounts[key.lower()] = account
        return account

    def suspend_account(self, key):
        self._record("suspend_account", key)
        return self.update_account(key, {"suspended": True})

    def move_account(self, key, path):
        self._record("move_account", key)
        return self.update_account(key, {"orgUnitPath": path})

    def list_org_nodes(self, parent_path=None):
        return list(self.org_nodes.values())

    def create_org_node(self, name, parent_path):
        path = f"{parent_path}/{name}"
        self._record("create_org_node", path)
        node = OrgNode(name=name, org_unit_path=path, parent_org_unit_path=parent_path)
        self.org_nodes[path] = node
        return node

    def find_devices(self, serials):
        return {s: self.devices[s] for s in serials if s in self.devices}

    def move_device(self, device_id, path):
        self._record("move_device", device_id)
        for serial, device in self.devices.items():
            if device.device_id == device_id:
                self.devices[serial] = replace(device, org_unit_path=path)
                return
        raise KeyError(device_id)


def make_student(**overrides) -> StudentRecord:
    data = dict(
        student_id="STU001",
        first_name="John",
        last_name="Doe",
        graduation_year=2028,
        grade="9",
        email="john.doe2028@school.edu",
    )
    data.update(overrides)
    return StudentRecord(**data)


def make_account(**overrides) -> DirectoryAccount:
    data = dict(
        primary_email="john.doe2028@school.edu",
        given_name="John",
        family_name="Doe",
        org_unit_path="/org/student/high/2028/john.doe",
    )
    data.update(overrides)
    return DirectoryAccount(**data)


@pytest.fixture
def fixtures_dir():
    return FIXTURES_DIR


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def deriver():
    return OrgPathDeriver("/org/student")


@pytest.fixture
def john():
    return make_student()


@pytest.fixture
def jane():
    return make_student(
        student_id="STU002",
        first_name="Jane",
        last_name="Smith",
        graduation_year=2031,
        grade="6",
        email="jane.smith2031@school.edu",
        device_serial="CHR002345678",
    )


@pytest.fixture
def alice():
    return make_student(
        student_id="STU004",
        first_name="Alice",
        last_name="Williams",
        graduation_year=2034,
        grade="1",
        email="alice.williams2034@school.edu",
    )


@pytest.fixture
def graduate():
    return make_student(
        student_id="STU009",
        first_name="Old",
        last_name="Timer",
        graduation_year=2024,
        grade="12",
        email="old.timer2024@school.edu",
    )


@pytest.fixture
def roster(john, jane, alice):
    return [john, jane, alice]


@pytest.fixture
def jane_device():
    return DirectoryDevice(
        serial_number="CHR002345678",
        org_unit_path="/org/devices/unassigned",
        device_id="dev-002",
    )


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def config(tmp_path):
    return Config(
        domain="school.edu",
        ou_root="/org/student",
        confirmation_threshold=10,
        backup_dir=tmp_path / "backups",
        max_concurrent_requests=2,
    )
