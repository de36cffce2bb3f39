# =============================================================================
# utils/config.py - Configuration management
# =============================================================================

import os
from typing import Optional, List
from dotenv import load_dotenv

from core.models import CountryFallback, OverwritePolicy


TRUE_VALUES = {'1', 'true', 'yes', 'on'}


class Config:
    """Configuration management"""

    def __init__(self):
        load_dotenv()

    @property
    def ad_server(self) -> Optional[str]:
        return os.getenv("AD_SERVER")

    @property
    def ad_username(self) -> Optional[str]:
        return os.getenv("AD_USERNAME")

    @property
    def ad_password(self) -> Optional[str]:
        return os.getenv("AD_PASSWORD")

    @property
    def base_dn(self) -> Optional[str]:
        return os.getenv("BASE_DN")

    @property
    def graph_tenant_id(self) -> Optional[str]:
        return os.getenv("GRAPH_TENANT_ID")

    @property
    def graph_client_id(self) -> Optional[str]:
        return os.getenv("GRAPH_CLIENT_ID")

    @property
    def graph_client_secret(self) -> Optional[str]:
        return os.getenv("GRAPH_CLIENT_SECRET")

    @property
    def overwrite_policy(self) -> OverwritePolicy:
        return OverwritePolicy(os.getenv("SYNC_OVERWRITE_POLICY", OverwritePolicy.NON_DESTRUCTIVE.value))

    @property
    def country_fallback(self) -> CountryFallback:
        return CountryFallback(os.getenv("SYNC_COUNTRY_FALLBACK", CountryFallback.PASSTHROUGH.value))

    @property
    def clear_missing_manager(self) -> bool:
        return self._flag("SYNC_CLEAR_MISSING_MANAGER", False)

    @property
    def export_snapshots(self) -> bool:
        return self._flag("SYNC_EXPORT_SNAPSHOTS", True)

    @property
    def push_immutable_id(self) -> bool:
        return self._flag("SYNC_PUSH_IMMUTABLE_ID", False)

    @property
    def max_workers(self) -> int:
        return max(1, int(os.getenv("SYNC_MAX_WORKERS", "1")))

    @property
    def call_timeout(self) -> int:
        return int(os.getenv("SYNC_CALL_TIMEOUT", "30"))

    def validate_ad_config(self) -> bool:
        """Validate that all required AD configuration is present"""
        return not self.get_missing_ad_vars()

    def get_missing_ad_vars(self) -> List[str]:
        """Get list of missing AD configuration variables"""
        vars_and_names = [
            (self.ad_server, "AD_SERVER"),
            (self.ad_username, "AD_USERNAME"),
            (self.ad_password, "AD_PASSWORD"),
            (self.base_dn, "BASE_DN")
        ]
        return [name for var, name in vars_and_names if not var]

    def validate_graph_config(self) -> bool:
        """Validate that all required Graph configuration is present"""
        return not self.get_missing_graph_vars()

    def get_missing_graph_vars(self) -> List[str]:
        """Get list of missing Graph configuration variables"""
        vars_and_names = [
            (self.graph_tenant_id, "GRAPH_TENANT_ID"),
            (self.graph_client_id, "GRAPH_CLIENT_ID"),
            (self.graph_client_secret, "GRAPH_CLIENT_SECRET")
        ]
        return [name for var, name in vars_and_names if not var]

    @staticmethod
    def _flag(name: str, default: bool) -> bool:
        value = os.getenv(name)
        if value is None or not value.strip():
            return default
        return value.strip().lower() in TRUE_VALUES
