# =============================================================================
# core/ad_client.py - On-premises Active Directory client
# =============================================================================

import logging
import threading
import uuid
from typing import Dict, Optional
from ldap3 import Server, Connection, ALL, MODIFY_REPLACE
from ldap3.utils.conv import escape_filter_chars

from core.exceptions import WriteError
from core.models import AttributeWriteSet, LocalUserRecord


# Write-set attribute name -> LDAP attribute name
LDAP_ATTRIBUTES: Dict[str, str] = {
    'officePhone': 'telephoneNumber',
    'streetAddress': 'streetAddress',
    'postalCode': 'postalCode',
    'title': 'title',
    'department': 'department',
    'city': 'l',
    'company': 'company',
    'country': 'c',
    'manager': 'manager',
}


class ActiveDirectoryClient:
    """Looks up and updates on-premises accounts by userPrincipalName"""

    def __init__(self, server_url: str, username: str, password: str, base_dn: str,
                 timeout: int = 30):
        self.server_url = server_url
        self.username = username
        self.password = password
        self.base_dn = base_dn
        self.timeout = timeout
        self.connection: Optional[Connection] = None
        # ldap3 sync connections keep search results on the connection object
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        """Context manager entry"""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.disconnect()

    def connect(self) -> bool:
        """Establish connection to Active Directory"""
        try:
            server = Server(self.server_url, get_info=ALL, connect_timeout=self.timeout)
            self.connection = Connection(
                server,
                user=self.username,
                password=self.password,
                auto_bind=True,
                receive_timeout=self.timeout
            )
            self.logger.info("Successfully connected to Active Directory")
            return True
        except Exception as e:
            self.logger.error(f"Failed to connect to AD: {e}")
            return False

    def disconnect(self) -> None:
        """Close Active Directory connection"""
        if self.connection:
            self.connection.unbind()
            self.connection = None
            self.logger.info("Disconnected from Active Directory")

    def query_user_by_upn(self, principal_name: str) -> Optional[LocalUserRecord]:
        """Query user by userPrincipalName; None when no account matches"""
        if not self.connection:
            raise ConnectionError("Not connected to Active Directory")

        search_filter = (
            f"(&(objectClass=user)(userPrincipalName={escape_filter_chars(principal_name)}))"
        )

        with self._lock:
            self.connection.search(
                search_base=self.base_dn,
                search_filter=search_filter,
                attributes=['userPrincipalName', 'displayName', 'objectGUID']
            )
            entries = list(self.connection.entries)

        if not entries:
            self.logger.debug(f"User {principal_name} not found in AD")
            return None

        if len(entries) > 1:
            self.logger.warning(f"Multiple users found for {principal_name}, using first match")

        entry = entries[0]
        self.logger.debug(f"Found user {principal_name} in AD at {entry.entry_dn}")
        return LocalUserRecord(
            principal_name=str(entry.userPrincipalName) if entry.userPrincipalName else principal_name,
            distinguished_name=entry.entry_dn,
            local_object_id=uuid.UUID(bytes_le=entry.objectGUID.raw_values[0]),
            display_name=str(entry.displayName) if entry.displayName else ""
        )

    def apply_writes(self, local: LocalUserRecord, writes: AttributeWriteSet) -> None:
        """Apply the whole write-set to one account in a single modify operation"""
        if not self.connection:
            raise ConnectionError("Not connected to Active Directory")
        if not writes:
            self.logger.debug(f"Nothing to write for {local.principal_name}")
            return

        changes = {}
        for attribute, value in writes.items():
            ldap_name = LDAP_ATTRIBUTES.get(attribute)
            if ldap_name is None:
                raise WriteError(f"Unsupported attribute {attribute!r} for {local.principal_name}")
            changes[ldap_name] = [(MODIFY_REPLACE, [] if value is None else [value])]

        with self._lock:
            success = self.connection.modify(local.distinguished_name, changes)
            result = dict(self.connection.result or {})

        if not success:
            raise WriteError(
                f"AD rejected update of {local.principal_name}: "
                f"{result.get('description', 'unknown')} {result.get('message', '')}".strip()
            )

        self.logger.debug(f"Updated {sorted(changes)} on {local.distinguished_name}")
