# =============================================================================
# core/reconciler.py - Cloud to on-premises attribute reconciliation
# =============================================================================

import base64
from typing import List, Optional, Tuple

from core.exceptions import MappingError, MissingInputError
from core.models import (
    AttributeWriteSet, CountryFallback, DirectoryUserRecord, LocalUserRecord,
    OverwritePolicy, ReconcileResult
)
from utils.countries import lookup_country_code, normalize_country_text


# (cloud field, local attribute)
FIELD_MAPPING: List[Tuple[str, str]] = [
    ('telephone_number', 'officePhone'),
    ('street_address', 'streetAddress'),
    ('postal_code', 'postalCode'),
    ('job_title', 'title'),
    ('department', 'department'),
    ('city', 'city'),
    ('company_name', 'company'),
]

COUNTRY_ATTRIBUTE = 'country'
MANAGER_ATTRIBUTE = 'manager'


def immutable_identifier(local: LocalUserRecord) -> str:
    """Base64 of the 16-byte objectGUID in its on-wire (little-endian) layout"""
    return base64.b64encode(local.local_object_id.bytes_le).decode('ascii')


class AttributeReconciler:
    """Computes the write-set that brings a local account in line with the cloud record"""

    def __init__(self, overwrite_policy: OverwritePolicy = OverwritePolicy.NON_DESTRUCTIVE,
                 country_fallback: CountryFallback = CountryFallback.PASSTHROUGH,
                 clear_missing_manager: bool = False):
        self.overwrite_policy = overwrite_policy
        self.country_fallback = country_fallback
        self.clear_missing_manager = clear_missing_manager

    def compute(self, cloud: Optional[DirectoryUserRecord],
                manager: Optional[DirectoryUserRecord],
                local: Optional[LocalUserRecord],
                country_text: Optional[str],
                local_manager: Optional[LocalUserRecord] = None,
                manager_lookup_failed: bool = False) -> ReconcileResult:
        """
        Compute attribute writes for one user without touching any directory.

        Args:
            cloud: Cloud directory user
            manager: Cloud directory manager of that user, if any
            local: Matching on-premises account
            country_text: Free-text country from the CSV row
            local_manager: On-premises account resolved from the manager's
                principal name, None when resolution failed
            manager_lookup_failed: the cloud manager could not be fetched, so
                the manager link is left untouched whatever the policy

        Returns:
            ReconcileResult with the write-set, immutable id and diagnostics

        Raises:
            MissingInputError: when the cloud or local record is absent
        """
        if cloud is None:
            raise MissingInputError("Cloud record is required for reconciliation")
        if local is None:
            raise MissingInputError(
                f"Local record for {cloud.principal_name} must be resolved before reconciliation"
            )

        writes: AttributeWriteSet = {}
        diagnostics: List[str] = []

        for cloud_field, attribute in FIELD_MAPPING:
            value = self._clean(getattr(cloud, cloud_field))
            if value:
                writes[attribute] = value
            elif self.overwrite_policy == OverwritePolicy.FORCE_OVERWRITE:
                writes[attribute] = None

        self._reconcile_country(country_text, writes, diagnostics)
        if manager_lookup_failed:
            diagnostics.append(
                f"Manager of {cloud.principal_name} could not be looked up; manager not linked"
            )
        else:
            self._reconcile_manager(manager, local_manager, writes, diagnostics)

        return ReconcileResult(
            writes=writes,
            immutable_id=immutable_identifier(local),
            diagnostics=diagnostics
        )

    def map_country(self, country_text: Optional[str]) -> str:
        """Country code for the text; unmapped text is passed through or raises MappingError"""
        try:
            return lookup_country_code(country_text)
        except MappingError:
            if self.country_fallback == CountryFallback.PASSTHROUGH:
                return normalize_country_text(country_text)
            raise

    def _reconcile_country(self, country_text: Optional[str], writes: AttributeWriteSet,
                           diagnostics: List[str]) -> None:
        if not normalize_country_text(country_text):
            if self.overwrite_policy == OverwritePolicy.FORCE_OVERWRITE:
                writes[COUNTRY_ATTRIBUTE] = None
            return

        try:
            writes[COUNTRY_ATTRIBUTE] = self.map_country(country_text)
        except MappingError as e:
            diagnostics.append(f"{e}; country not written")

    def _reconcile_manager(self, manager: Optional[DirectoryUserRecord],
                           local_manager: Optional[LocalUserRecord],
                           writes: AttributeWriteSet, diagnostics: List[str]) -> None:
        if manager is None:
            if self.clear_missing_manager:
                writes[MANAGER_ATTRIBUTE] = None
            return

        if local_manager is None:
            diagnostics.append(
                f"Manager {manager.principal_name} not found on-premises; manager not linked"
            )
            return

        writes[MANAGER_ATTRIBUTE] = local_manager.distinguished_name

    @staticmethod
    def _clean(value: Optional[str]) -> str:
        if value is None:
            return ''
        return str(value).strip()
