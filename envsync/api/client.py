"""HTTP client for the EnvSync service (auth + encrypted file storage)."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from envsync.config import get_api_url
from envsync.errors import ApiError, NotFoundError
from envsync.models import Project, RemoteFile, RestoredVersion, VersionRecord

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _error_message(response: httpx.Response) -> str:
    """Server error text: JSON "message" or "error" field, else the raw body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        detail = data.get("message") or data.get("error")
        if isinstance(detail, str) and detail:
            return detail
    return response.text


def _check(response: httpx.Response) -> None:
    if response.status_code >= 400:
        raise ApiError(
            f"{response.status_code} {_error_message(response)}",
            status_code=response.status_code,
        )


class EnvSyncAPI:
    """
    Client for the EnvSync service: magic-link login, project listing and
    per-file get/put/history/restore. Content is always an encrypted envelope;
    this class never sees plaintext.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = (base_url or get_api_url()).rstrip("/")
        self._access_token = access_token
        self._timeout = timeout
        log.debug("API client base_url=%s", self._base_url)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> Dict[str, str]:
        out = {"Accept": "application/json"}
        if self._access_token:
            out["Authorization"] = f"Bearer {self._access_token}"
        return out

    def set_access_token(self, token: Optional[str]) -> None:
        """Set or clear the access token."""
        self._access_token = token

    def set_base_url(self, base_url: str) -> None:
        """Update the base URL (e.g. after the user changes settings)."""
        self._base_url = (base_url or "").rstrip("/")
        log.debug("API client base_url updated to %s", self._base_url)

    def _file_url(self, project_id: str, file_name: str, action: str = "") -> str:
        url = f"{self._base_url}/files/{project_id}/{quote(file_name, safe='')}"
        return f"{url}/{action}" if action else url

    # --- Auth ---

    def send_magic_link(self, email: str) -> None:
        """POST /auth/magic-link. The service emails a one-time code."""
        log.debug("send_magic_link")
        with httpx.Client(timeout=self._timeout) as client:
            r = client.post(
                f"{self._base_url}/auth/magic-link",
                json={"email": email},
                headers={"Content-Type": "application/json"},
            )
            _check(r)

    def verify_otp(self, email: str, token: str) -> Dict[str, Any]:
        """POST /auth/verify-otp. Returns {access_token, email} and keeps the token."""
        with httpx.Client(timeout=self._timeout) as client:
            r = client.post(
                f"{self._base_url}/auth/verify-otp",
                json={"email": email, "token": token},
                headers={"Content-Type": "application/json"},
            )
            _check(r)
            data = r.json()
            self._access_token = data["access_token"]
            return data

    def validate_token(self, token: Optional[str] = None) -> bool:
        """GET /auth/validate. True on 200, False otherwise (401 = expired/revoked)."""
        headers = self._headers()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        with httpx.Client(timeout=self._timeout) as client:
            r = client.get(f"{self._base_url}/auth/validate", headers=headers)
            return r.status_code == 200

    def logout(self) -> None:
        """POST /auth/logout. Errors are logged, not raised: local logout proceeds regardless."""
        try:
            with httpx.Client(timeout=self._timeout) as client:
                client.post(f"{self._base_url}/auth/logout", headers=self._headers())
        except httpx.HTTPError as e:
            log.warning("Logout request failed: %s", e)
        self._access_token = None

    # --- Projects and files ---

    def list_projects(self) -> List[Project]:
        """GET /files. Returns the user's projects."""
        log.debug("GET /files")
        with httpx.Client(timeout=self._timeout) as client:
            r = client.get(f"{self._base_url}/files", headers=self._headers())
            _check(r)
            data = r.json()
        return [Project.from_json(p) for p in data.get("projects") or []]

    def list_files(self, project_id: str) -> List[RemoteFile]:
        """GET /files/{project}. Returns metadata for every file in the project."""
        log.debug("list_files project=%s", project_id)
        with httpx.Client(timeout=self._timeout) as client:
            r = client.get(f"{self._base_url}/files/{project_id}", headers=self._headers())
            _check(r)
            data = r.json()
        files = data.get("files") or []
        log.debug("list_files returned %d items", len(files))
        return [RemoteFile.from_json(f.get("file_name", ""), f) for f in files]

    def get_file(self, project_id: str, file_name: str) -> Optional[RemoteFile]:
        """GET /files/{project}/{name}. Returns {hash, updated_at} or None on 404."""
        log.debug("get_file project=%s name=%s", project_id, file_name)
        with httpx.Client(timeout=self._timeout) as client:
            r = client.get(self._file_url(project_id, file_name), headers=self._headers())
            if r.status_code == 404:
                return None
            _check(r)
            return RemoteFile.from_json(file_name, r.json())

    def get_file_content(self, project_id: str, file_name: str) -> Optional[RemoteFile]:
        """GET /files/{project}/{name}/content. Returns {content, hash} or None on 404."""
        log.debug("get_file_content project=%s name=%s", project_id, file_name)
        with httpx.Client(timeout=self._timeout) as client:
            r = client.get(self._file_url(project_id, file_name, "content"), headers=self._headers())
            if r.status_code == 404:
                return None
            _check(r)
            return RemoteFile.from_json(file_name, r.json())

    def put_file(self, project_id: str, file_name: str, content: str, content_hash: str) -> None:
        """PUT /files/{project}/{name} with the encrypted envelope and plaintext hash."""
        log.debug("put_file project=%s name=%s size=%d", project_id, file_name, len(content))
        with httpx.Client(timeout=self._timeout) as client:
            r = client.put(
                self._file_url(project_id, file_name),
                json={"content": content, "hash": content_hash},
                headers={**self._headers(), "Content-Type": "application/json"},
            )
            _check(r)

    def delete_file(self, project_id: str, file_name: str) -> None:
        """DELETE /files/{project}/{name}. Treats 404 as success (file already gone)."""
        log.debug("delete_file project=%s name=%s", project_id, file_name)
        with httpx.Client(timeout=self._timeout) as client:
            r = client.delete(self._file_url(project_id, file_name), headers=self._headers())
            if r.status_code == 404:
                log.debug("delete_file name=%s: already gone (404)", file_name)
                return
            _check(r)

    def get_file_history(self, project_id: str, file_name: str) -> List[VersionRecord]:
        """GET /files/{project}/{name}/history. Newest first, "current" entry included."""
        log.debug("get_file_history project=%s name=%s", project_id, file_name)
        with httpx.Client(timeout=self._timeout) as client:
            r = client.get(self._file_url(project_id, file_name, "history"), headers=self._headers())
            if r.status_code == 404:
                return []
            _check(r)
            data = r.json()
        return [VersionRecord.from_json(v) for v in data.get("history") or []]

    def restore_version(self, project_id: str, file_name: str, version_id: str) -> RestoredVersion:
        """POST /files/{project}/{name}/restore. Raises NotFoundError when file or version is absent."""
        log.debug("restore_version project=%s name=%s version=%s", project_id, file_name, version_id)
        with httpx.Client(timeout=self._timeout) as client:
            r = client.post(
                self._file_url(project_id, file_name, "restore"),
                json={"versionId": version_id},
                headers={**self._headers(), "Content-Type": "application/json"},
            )
            if r.status_code == 404:
                raise NotFoundError(f"{file_name}: {_error_message(r)}")
            _check(r)
            data = r.json()
        return RestoredVersion(
            success=bool(data.get("success")),
            content=data.get("content"),
            hash=data.get("hash"),
        )
