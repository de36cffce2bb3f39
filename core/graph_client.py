# =============================================================================
# core/graph_client.py - Cloud directory (Microsoft Graph) client
# =============================================================================

import logging
import threading
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from azure.identity import ClientSecretCredential

from core.exceptions import CrossReferenceError
from core.models import DirectoryUserRecord


GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

USER_FIELDS = [
    'id', 'userPrincipalName', 'displayName', 'businessPhones', 'streetAddress',
    'postalCode', 'city', 'jobTitle', 'department', 'companyName'
]


class GraphDirectoryClient:
    """Reads users and managers from the cloud directory"""

    def __init__(self, tenant_id: str, client_id: str, client_secret: str,
                 timeout: int = 30, credential=None, session: Optional[requests.Session] = None):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.credential = credential
        self.session = session
        # requests.Session is not documented as thread-safe
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        """Context manager entry"""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.disconnect()

    def connect(self) -> None:
        """Prepare credential and HTTP session"""
        if self.credential is None:
            self.credential = ClientSecretCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                client_secret=self.client_secret,
            )
        if self.session is None:
            self.session = requests.Session()
        self.logger.info("Microsoft Graph client ready")

    def disconnect(self) -> None:
        """Close the HTTP session"""
        if self.session:
            self.session.close()
            self.session = None
            self.logger.info("Microsoft Graph session closed")

    def get_user(self, principal_name: str) -> Optional[DirectoryUserRecord]:
        """Fetch a user by userPrincipalName; None when the directory has no such user"""
        data = self._get(f"/users/{self._quote(principal_name)}", principal_name)
        return self._to_record(data) if data else None

    def get_manager(self, principal_name: str) -> Optional[DirectoryUserRecord]:
        """Fetch the manager of a user; None when no manager is assigned"""
        data = self._get(f"/users/{self._quote(principal_name)}/manager", principal_name)
        return self._to_record(data) if data else None

    def set_immutable_id(self, object_id: str, immutable_id: str) -> None:
        """Write onPremisesImmutableId on the cloud user"""
        url = f"{GRAPH_BASE_URL}/users/{object_id}"
        headers = self._headers()
        try:
            with self._lock:
                response = self._session().patch(
                    url,
                    headers=headers,
                    json={'onPremisesImmutableId': immutable_id},
                    timeout=self.timeout
                )
        except requests.RequestException as e:
            raise CrossReferenceError(f"Immutable id push for {object_id} failed: {e}") from e

        if not response.ok:
            raise CrossReferenceError(
                f"Graph rejected immutable id for {object_id}: "
                f"{response.status_code} {self._error_message(response)}"
            )
        self.logger.info(f"Set onPremisesImmutableId on {object_id}")

    def _get(self, path: str, identifier: str) -> Optional[Dict[str, Any]]:
        headers = self._headers()
        with self._lock:
            response = self._session().get(
                f"{GRAPH_BASE_URL}{path}",
                headers=headers,
                params={'$select': ','.join(USER_FIELDS)},
                timeout=self.timeout
            )
        if response.status_code == 404:
            self.logger.debug(f"{path} not found in Graph for {identifier}")
            return None
        response.raise_for_status()
        return response.json()

    def _session(self) -> requests.Session:
        if self.session is None:
            raise ConnectionError("Graph client is not connected")
        return self.session

    def _headers(self) -> Dict[str, str]:
        token = self.credential.get_token(GRAPH_SCOPE)
        return {
            "Authorization": f"Bearer {token.token}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _quote(principal_name: str) -> str:
        return quote(principal_name, safe='@')

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json().get('error', {}).get('message', '')
        except ValueError:
            return response.text

    @staticmethod
    def _to_record(data: Dict[str, Any]) -> DirectoryUserRecord:
        phones = data.get('businessPhones') or []
        return DirectoryUserRecord(
            principal_name=data.get('userPrincipalName') or '',
            object_id=data.get('id') or '',
            display_name=data.get('displayName') or '',
            telephone_number=phones[0] if phones else None,
            street_address=data.get('streetAddress'),
            postal_code=data.get('postalCode'),
            city=data.get('city'),
            job_title=data.get('jobTitle'),
            department=data.get('department'),
            company_name=data.get('companyName'),
        )
