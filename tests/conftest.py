import sys
import uuid
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from core.exceptions import CrossReferenceError, WriteError
from core.models import DirectoryUserRecord, LocalUserRecord


class FakeCloudDirectory:
    """In-memory stand-in for the Graph client"""

    def __init__(self, users=None, managers=None, reject_immutable_id=False):
        self.users = dict(users or {})
        self.managers = dict(managers or {})
        self.reject_immutable_id = reject_immutable_id
        self.immutable_ids = {}

    def get_user(self, principal_name):
        return self.users.get(principal_name)

    def get_manager(self, principal_name):
        return self.managers.get(principal_name)

    def set_immutable_id(self, object_id, immutable_id):
        if self.reject_immutable_id:
            raise CrossReferenceError(f"rejected for {object_id}")
        self.immutable_ids[object_id] = immutable_id


class FakeLocalDirectory:
    """In-memory stand-in for the Active Directory client"""

    def __init__(self, users=None, rejected=(), broken_lookups=()):
        self.users = dict(users or {})
        self.rejected = set(rejected)
        self.broken_lookups = set(broken_lookups)
        self.applied = {}
        self.lookups = []

    def query_user_by_upn(self, principal_name):
        self.lookups.append(principal_name)
        if principal_name in self.broken_lookups:
            raise RuntimeError("LDAP server unavailable")
        return self.users.get(principal_name)

    def apply_writes(self, local, writes):
        if local.principal_name in self.rejected:
            raise WriteError(f"insufficient rights on {local.distinguished_name}")
        self.applied[local.principal_name] = dict(writes)


def make_cloud_user(principal_name, **fields):
    fields.setdefault('object_id', str(uuid.uuid5(uuid.NAMESPACE_DNS, principal_name)))
    fields.setdefault('display_name', principal_name.split('@')[0].title())
    return DirectoryUserRecord(principal_name=principal_name, **fields)


def make_local_user(principal_name, object_id=None):
    name = principal_name.split('@')[0]
    return LocalUserRecord(
        principal_name=principal_name,
        distinguished_name=f"CN={name},OU=Staff,DC=corp,DC=example",
        local_object_id=object_id or uuid.uuid5(uuid.NAMESPACE_URL, principal_name),
        display_name=name.title()
    )


@pytest.fixture
def cloud_user():
    return make_cloud_user(
        'alice@example.com',
        telephone_number='+31 20 123 4567',
        street_address='Herengracht 1',
        postal_code='1015 BA',
        city='Amsterdam',
        job_title='Engineer',
        department='Platform',
        company_name='Example BV',
    )


@pytest.fixture
def local_user():
    return make_local_user(
        'alice@example.com', uuid.UUID('0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0')
    )
