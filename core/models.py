# =============================================================================
# core/models.py - Directory sync data models
# =============================================================================

import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum


# Attribute name -> new value; None clears the attribute
AttributeWriteSet = Dict[str, Optional[str]]


class OverwritePolicy(Enum):
    """How empty cloud values are treated"""
    NON_DESTRUCTIVE = "non-destructive"
    FORCE_OVERWRITE = "force-overwrite"


class CountryFallback(Enum):
    """What to do with country names missing from the lookup table"""
    PASSTHROUGH = "passthrough"
    SKIP = "skip"


class RowStatus(Enum):
    """Outcome of processing a single CSV row"""
    UPDATED = "updated"
    DRY_RUN = "dry_run"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class DirectoryUserRecord:
    """Read-only snapshot of a cloud directory user"""
    principal_name: str
    object_id: str
    display_name: str = ""
    telephone_number: Optional[str] = None
    street_address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    company_name: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            'principal_name': self.principal_name,
            'object_id': self.object_id,
            'display_name': self.display_name,
            'telephone_number': self.telephone_number,
            'street_address': self.street_address,
            'postal_code': self.postal_code,
            'city': self.city,
            'job_title': self.job_title,
            'department': self.department,
            'company_name': self.company_name,
        }


@dataclass
class LocalUserRecord:
    """On-premises account as found for one CSV row"""
    principal_name: str
    distinguished_name: str
    local_object_id: uuid.UUID
    display_name: str = ""


@dataclass
class ReconcileResult:
    """Pure output of the attribute reconciler"""
    writes: AttributeWriteSet
    immutable_id: str
    diagnostics: List[str] = field(default_factory=list)


@dataclass
class RowResult:
    """Per-row processing result, aggregated by the caller"""
    principal_name: str
    status: RowStatus
    writes: AttributeWriteSet = field(default_factory=dict)
    immutable_id: str = ""
    messages: List[str] = field(default_factory=list)

    def as_report_row(self) -> Dict[str, str]:
        return {
            'principal_name': self.principal_name,
            'status': self.status.value,
            'attributes': ';'.join(sorted(self.writes)),
            'immutable_id': self.immutable_id,
            'messages': ' | '.join(self.messages),
        }


@dataclass
class ProcessingStats:
    """Statistics for a sync run"""
    total_records: int = 0
    updated: int = 0
    skipped: int = 0
    not_found: int = 0
    failed: int = 0
    errors: int = 0
    status_counts: Dict[RowStatus, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: List[RowResult]) -> 'ProcessingStats':
        """Aggregate row results into a tally"""
        stats = cls(total_records=len(results))
        for result in results:
            status = result.status
            stats.status_counts[status] = stats.status_counts.get(status, 0) + 1

            if status in (RowStatus.UPDATED, RowStatus.DRY_RUN):
                stats.updated += 1
            elif status == RowStatus.SKIPPED:
                stats.skipped += 1
            elif status == RowStatus.NOT_FOUND:
                stats.not_found += 1
            elif status == RowStatus.FAILED:
                stats.failed += 1
            elif status == RowStatus.ERROR:
                stats.errors += 1

        return stats

    @property
    def processed(self) -> int:
        """Rows that reached the directory (everything but blank-UPN skips)"""
        return self.total_records - self.skipped

    @property
    def success_rate(self) -> float:
        """Calculate success rate percentage over processed rows"""
        if self.processed == 0:
            return 0.0
        return (self.updated / self.processed) * 100
