# =============================================================================
# core/sync_processor.py - CSV driven cloud to on-premises attribute sync
# =============================================================================

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.exceptions import CrossReferenceError, NotFoundError, SyncError
from core.models import ProcessingStats, RowResult, RowStatus
from core.reconciler import AttributeReconciler
from utils.csv_utils import CSVHandler
from utils.snapshots import write_snapshots


class DirectorySyncProcessor:
    """Runs the per-row lookup, reconcile and write workflow over a CSV file"""

    UPN_COLUMN = 'UserPrincipalName'
    COUNTRY_COLUMN = 'Country'
    REPORT_FIELDNAMES = ['principal_name', 'status', 'attributes', 'immutable_id', 'messages']

    def __init__(self, cloud_source, local_directory, reconciler: AttributeReconciler,
                 max_workers: int = 1, export_snapshots: bool = True,
                 push_immutable_id: bool = False, dry_run: bool = False):
        """
        Args:
            cloud_source: object with get_user, get_manager and set_immutable_id
            local_directory: object with query_user_by_upn and apply_writes
            reconciler: computes the write-set per user
            max_workers: rows processed concurrently
            export_snapshots: write cloud user/manager JSON next to the CSV
            push_immutable_id: write the derived immutable id back to the cloud user
            dry_run: compute and log writes without applying them
        """
        self.cloud_source = cloud_source
        self.local_directory = local_directory
        self.reconciler = reconciler
        self.max_workers = max(1, max_workers)
        self.export_snapshots = export_snapshots
        self.push_immutable_id = push_immutable_id
        self.dry_run = dry_run
        self.snapshot_dir: Optional[Path] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def process_users(self, input_csv: str, delimiter: str = ',',
                      report_csv: Optional[str] = None) -> ProcessingStats:
        """Main processing workflow"""
        self.logger.info(f"Starting {self.__class__.__name__} processing workflow")
        if self.dry_run:
            self.logger.info("Dry run: no changes will be written to either directory")

        csv_data, _ = CSVHandler.read_csv(
            input_csv, delimiter=delimiter,
            required_columns=[self.UPN_COLUMN, self.COUNTRY_COLUMN]
        )
        self.snapshot_dir = Path(input_csv).resolve().parent

        results = self.process_rows(csv_data)

        if report_csv:
            CSVHandler.write_csv(
                [result.as_report_row() for result in results],
                report_csv, self.REPORT_FIELDNAMES
            )

        stats = ProcessingStats.from_results(results)
        self.log_statistics(stats)
        return stats

    def process_rows(self, csv_data: List[Dict[str, Any]]) -> List[RowResult]:
        """Process rows, concurrently when more than one worker is configured"""
        if self.max_workers == 1:
            return [self.safe_process_row(row) for row in csv_data]

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(self.safe_process_row, csv_data))

    def safe_process_row(self, row: Dict[str, Any]) -> RowResult:
        """Process one row; failures become a result instead of propagating"""
        principal_name = (row.get(self.UPN_COLUMN) or '').strip()
        try:
            return self.process_row(row)
        except SyncError as e:
            self.logger.error(f"Failed to sync {principal_name}: {e}")
            return RowResult(principal_name, RowStatus.FAILED, messages=[str(e)])
        except Exception as e:
            self.logger.error(f"Error during sync of {principal_name}: {e}", exc_info=True)
            return RowResult(principal_name, RowStatus.ERROR, messages=[str(e)])

    def process_row(self, row: Dict[str, Any]) -> RowResult:
        """Lookup, reconcile and write a single user"""
        principal_name = (row.get(self.UPN_COLUMN) or '').strip()
        if not principal_name:
            self.logger.warning("Skipping row with empty UserPrincipalName")
            return RowResult(principal_name, RowStatus.SKIPPED,
                             messages=["empty UserPrincipalName"])

        try:
            cloud = self._require(self.cloud_source.get_user(principal_name),
                                  principal_name, "cloud directory")
            manager, manager_lookup_failed = self._lookup_cloud_manager(principal_name)
            self._export(principal_name, cloud, manager)

            local = self._require(self.local_directory.query_user_by_upn(principal_name),
                                  principal_name, "Active Directory")
        except NotFoundError as e:
            self.logger.warning(str(e))
            return RowResult(principal_name, RowStatus.NOT_FOUND, messages=[str(e)])

        local_manager = self._resolve_local_manager(principal_name, manager)

        result = self.reconciler.compute(
            cloud, manager, local, row.get(self.COUNTRY_COLUMN), local_manager=local_manager,
            manager_lookup_failed=manager_lookup_failed
        )
        for message in result.diagnostics:
            self.logger.warning(f"{principal_name}: {message}")

        row_result = RowResult(
            principal_name,
            RowStatus.DRY_RUN if self.dry_run else RowStatus.UPDATED,
            writes=result.writes,
            immutable_id=result.immutable_id,
            messages=list(result.diagnostics)
        )

        if self.dry_run:
            self.logger.info(f"[dry run] {principal_name}: {result.writes}")
            return row_result

        self.local_directory.apply_writes(local, result.writes)
        self.logger.info(f"Updated {principal_name}: {sorted(result.writes)}")

        if self.push_immutable_id:
            try:
                self.cloud_source.set_immutable_id(cloud.object_id, result.immutable_id)
            except CrossReferenceError as e:
                self.logger.error(f"{principal_name}: {e}")
                row_result.status = RowStatus.FAILED
                row_result.messages.append(str(e))

        return row_result

    def log_statistics(self, stats: ProcessingStats) -> None:
        """Log processing statistics"""
        status_counts = {status.value: count for status, count in stats.status_counts.items()}
        self.logger.info(f"Sync summary: {status_counts}")
        self.logger.info(
            f"Success rate: {stats.success_rate:.1f}% ({stats.updated}/{stats.processed}), "
            f"skipped {stats.skipped}, not found {stats.not_found}, "
            f"failed {stats.failed}, errors {stats.errors}"
        )

    def _lookup_cloud_manager(self, principal_name: str):
        """Cloud manager and whether the lookup failed; a failure skips only the manager link"""
        try:
            return self.cloud_source.get_manager(principal_name), False
        except Exception as e:
            self.logger.warning(f"{principal_name}: cloud manager lookup failed: {e}")
            return None, True

    def _resolve_local_manager(self, principal_name: str, manager):
        """On-premises account of the cloud manager; None skips only the manager link"""
        if manager is None or not manager.principal_name:
            return None
        try:
            return self.local_directory.query_user_by_upn(manager.principal_name)
        except Exception as e:
            self.logger.warning(
                f"{principal_name}: lookup of manager {manager.principal_name} failed: {e}"
            )
            return None

    def _export(self, principal_name: str, cloud, manager) -> None:
        if not self.export_snapshots or self.snapshot_dir is None:
            return
        try:
            write_snapshots(self.snapshot_dir, principal_name, cloud, manager)
        except OSError as e:
            self.logger.warning(f"Could not write snapshots for {principal_name}: {e}")

    @staticmethod
    def _require(record, principal_name: str, directory: str):
        if record is None:
            raise NotFoundError(principal_name, directory)
        return record
