import csv
import json
from pathlib import Path

import pytest
import requests

from conftest import FakeCloudDirectory, FakeLocalDirectory, make_cloud_user, make_local_user
from core.exceptions import InputFileError
from core.models import RowStatus
from core.reconciler import AttributeReconciler
from core.sync_processor import DirectorySyncProcessor


def write_csv(path: Path, rows, fieldnames=("UserPrincipalName", "Country"), delimiter=','):
    with open(path, 'w', newline='', encoding='utf-8') as file:
        writer = csv.DictWriter(file, fieldnames=list(fieldnames), delimiter=delimiter)
        writer.writeheader()
        writer.writerows(rows)
    return path


def make_processor(cloud, local, **kwargs):
    kwargs.setdefault('export_snapshots', False)
    return DirectorySyncProcessor(cloud, local, AttributeReconciler(), **kwargs)


@pytest.fixture
def directories():
    cloud = FakeCloudDirectory(
        users={
            'a@x.com': make_cloud_user('a@x.com', job_title='Engineer', city='Utrecht'),
            'b@x.com': make_cloud_user('b@x.com', job_title='Manager'),
        },
        managers={'a@x.com': make_cloud_user('b@x.com', job_title='Manager')},
    )
    local = FakeLocalDirectory(users={
        'a@x.com': make_local_user('a@x.com'),
        'b@x.com': make_local_user('b@x.com'),
    })
    return cloud, local


def test_blank_principal_name_is_skipped_not_counted_as_error(tmp_path, directories):
    cloud, local = directories
    path = write_csv(tmp_path / "users.csv", [
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"},
        {"UserPrincipalName": "", "Country": "GB"},
    ])

    stats = make_processor(cloud, local).process_users(str(path))

    assert stats.total_records == 2
    assert stats.processed == 1
    assert stats.updated == 1
    assert stats.skipped == 1
    assert stats.failed == 0
    assert stats.errors == 0
    assert list(local.applied) == ['a@x.com']


def test_row_applies_attributes_and_manager_link(directories):
    cloud, local = directories

    result = make_processor(cloud, local).process_row(
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"}
    )

    assert result.status == RowStatus.UPDATED
    assert local.applied['a@x.com'] == {
        'title': 'Engineer',
        'city': 'Utrecht',
        'country': 'NL',
        'manager': 'CN=b,OU=Staff,DC=corp,DC=example',
    }
    assert result.immutable_id
    assert local.lookups == ['a@x.com', 'b@x.com']


def test_unresolved_manager_still_processes_row(directories):
    cloud, local = directories
    del local.users['b@x.com']

    result = make_processor(cloud, local).process_row(
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"}
    )

    assert result.status == RowStatus.UPDATED
    assert 'manager' not in local.applied['a@x.com']
    assert local.applied['a@x.com']['title'] == 'Engineer'
    assert any('b@x.com' in message for message in result.messages)


def test_failing_manager_lookup_skips_only_manager(directories):
    cloud, local = directories
    local.broken_lookups.add('b@x.com')

    result = make_processor(cloud, local).process_row(
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"}
    )

    assert result.status == RowStatus.UPDATED
    assert 'manager' not in local.applied['a@x.com']


def test_missing_cloud_user_skips_row(directories):
    cloud, local = directories

    result = make_processor(cloud, local).process_row(
        {"UserPrincipalName": "nobody@x.com", "Country": "Netherlands"}
    )

    assert result.status == RowStatus.NOT_FOUND
    assert local.lookups == []
    assert local.applied == {}


def test_missing_local_user_skips_row(directories):
    cloud, local = directories
    del local.users['a@x.com']

    result = make_processor(cloud, local).process_row(
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"}
    )

    assert result.status == RowStatus.NOT_FOUND
    assert local.applied == {}


def test_write_failure_does_not_abort_batch(tmp_path, directories):
    cloud, local = directories
    local.rejected.add('a@x.com')
    path = write_csv(tmp_path / "users.csv", [
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"},
        {"UserPrincipalName": "b@x.com", "Country": "United Kingdom"},
        {"UserPrincipalName": "c@x.com", "Country": "Germany"},
    ])

    stats = make_processor(cloud, local).process_users(str(path))

    assert stats.failed == 1
    assert stats.updated == 1
    assert stats.not_found == 1
    assert local.applied['b@x.com']['country'] == 'GB'


def test_unexpected_exception_is_isolated(directories):
    cloud, local = directories
    local.broken_lookups.add('a@x.com')
    processor = make_processor(cloud, local)

    results = processor.process_rows([
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"},
        {"UserPrincipalName": "b@x.com", "Country": "Netherlands"},
    ])

    assert [r.status for r in results] == [RowStatus.ERROR, RowStatus.UPDATED]


def test_dry_run_writes_nothing(directories):
    cloud, local = directories
    processor = make_processor(cloud, local, dry_run=True, push_immutable_id=True)

    result = processor.process_row({"UserPrincipalName": "a@x.com", "Country": "Netherlands"})

    assert result.status == RowStatus.DRY_RUN
    assert result.writes['title'] == 'Engineer'
    assert local.applied == {}
    assert cloud.immutable_ids == {}


def test_immutable_id_push_is_opt_in(directories):
    cloud, local = directories

    make_processor(cloud, local).process_row({"UserPrincipalName": "a@x.com", "Country": "NL"})
    assert cloud.immutable_ids == {}

    result = make_processor(cloud, local, push_immutable_id=True).process_row(
        {"UserPrincipalName": "a@x.com", "Country": "NL"}
    )
    object_id = cloud.users['a@x.com'].object_id
    assert cloud.immutable_ids == {object_id: result.immutable_id}


def test_rejected_immutable_id_push_reports_failure(directories):
    cloud, local = directories
    cloud.reject_immutable_id = True

    result = make_processor(cloud, local, push_immutable_id=True).process_row(
        {"UserPrincipalName": "a@x.com", "Country": "NL"}
    )

    assert result.status == RowStatus.FAILED
    assert 'a@x.com' in local.applied


def test_parallel_processing_matches_sequential(tmp_path, directories):
    cloud, local = directories
    rows = [{"UserPrincipalName": upn, "Country": "Netherlands"}
            for upn in ('a@x.com', 'b@x.com', 'c@x.com', '')]
    path = write_csv(tmp_path / "users.csv", rows)

    stats = make_processor(cloud, local, max_workers=4).process_users(str(path))

    assert stats.updated == 2
    assert stats.not_found == 1
    assert stats.skipped == 1
    assert set(local.applied) == {'a@x.com', 'b@x.com'}


def test_missing_required_column_aborts_before_any_row(tmp_path, directories):
    cloud, local = directories
    path = write_csv(tmp_path / "users.csv", [{"UserPrincipalName": "a@x.com"}],
                     fieldnames=("UserPrincipalName",))

    with pytest.raises(InputFileError):
        make_processor(cloud, local).process_users(str(path))

    assert local.lookups == []


def test_extra_columns_and_delimiter(tmp_path, directories):
    cloud, local = directories
    path = write_csv(
        tmp_path / "users.csv",
        [{"UserPrincipalName": "a@x.com", "Country": "Netherlands", "Notes": "ignored"}],
        fieldnames=("UserPrincipalName", "Country", "Notes"), delimiter=';'
    )

    stats = make_processor(cloud, local).process_users(str(path), delimiter=';')

    assert stats.updated == 1


def test_report_and_snapshots_written(tmp_path, directories):
    cloud, local = directories
    path = write_csv(tmp_path / "users.csv", [
        {"UserPrincipalName": "a@x.com", "Country": "Netherlands"},
        {"UserPrincipalName": "", "Country": ""},
    ])
    report = tmp_path / "report.csv"

    make_processor(cloud, local, export_snapshots=True).process_users(
        str(path), report_csv=str(report)
    )

    with open(report, newline='', encoding='utf-8') as file:
        lines = list(csv.DictReader(file))
    assert [line['status'] for line in lines] == ['updated', 'skipped']
    assert 'title' in lines[0]['attributes'].split(';')

    user_snapshot = json.loads((tmp_path / "a_at_x.com_user.json").read_text(encoding='utf-8'))
    assert user_snapshot['principal_name'] == 'a@x.com'
    assert (tmp_path / "a_at_x.com_manager.json").exists()


def test_failing_cloud_manager_lookup_skips_only_manager(directories):
    cloud, local = directories

    def timed_out(principal_name):
        raise requests.Timeout("manager lookup timed out")

    cloud.get_manager = timed_out

    result = make_processor(cloud, local).safe_process_row(
        {"UserPrincipalName": "a@x.com", "Country": "NL"}
    )

    assert result.status == RowStatus.UPDATED
    assert local.applied['a@x.com']['title'] == 'Engineer'
    assert 'manager' not in local.applied['a@x.com']
    assert local.lookups == ['a@x.com']
    assert any('could not be looked up' in message for message in result.messages)


def test_failing_cloud_manager_lookup_does_not_clear_manager(directories):
    cloud, local = directories

    def unavailable(principal_name):
        raise requests.ConnectionError("graph unreachable")

    cloud.get_manager = unavailable
    processor = DirectorySyncProcessor(
        cloud, local, AttributeReconciler(clear_missing_manager=True), export_snapshots=False
    )

    result = processor.process_row({"UserPrincipalName": "a@x.com", "Country": "NL"})

    assert result.status == RowStatus.UPDATED
    assert 'manager' not in local.applied['a@x.com']
