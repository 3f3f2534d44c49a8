"""
DocuWare platform API client implementation.
"""

import json
import logging
import re
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from pathlib import Path
from typing import Any, Iterable, Optional

import requests
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt

from ..query import build_query_body, compile_predicate
from .models import (
    DEFAULT_DOCUMENT_ID_FIELD,
    Cabinet,
    DocuwareDocument,
    documents_from_query_result,
    documents_from_table_page,
    table_header_names,
)
from .retry import PolicyWait, RetryPolicy

logger = logging.getLogger(__name__)

PLATFORM = "docuware/platform"

# Cookie entries look like "name=value; Path=/; HttpOnly"
_COOKIE_PAIR = re.compile(r"^([^=]+)=([^;]+);")


class DocuwareError(Exception):
    """Base exception for DocuWare client errors."""
    pass


class DocuwareAPIError(DocuwareError):
    """API call failed or returned no usable body."""
    def __init__(self, status_code: Optional[int], message: str, response_body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        if status_code is None:
            super().__init__(f"DocuWare API error: {message}")
        else:
            super().__init__(f"DocuWare API error {status_code}: {message}")


class DocuwareAuthError(DocuwareError):
    """Logon or token exchange failed."""
    pass


@dataclass
class DocuwareSession:
    """Endpoint and session cookie used by every request of one client."""
    endpoint: str
    cookie: str = ""

    def url(self, path: str) -> str:
        return f"{self.endpoint}/{path}"


def format_cookie(set_cookie_values: Iterable[str]) -> str:
    """
    Normalize ``Set-Cookie`` header values into a single ``Cookie`` header.

    Keeps the leading ``name=value`` of each entry, drops attributes, and
    joins pairs with ``"; "`` in first-seen order. A repeated name keeps its
    first position but takes the later value.
    """
    pairs: dict[str, str] = {}
    for value in set_cookie_values or []:
        match = _COOKIE_PAIR.match(value)
        if match:
            pairs[match.group(1)] = match.group(2)
    return "; ".join(f"{name}={value}" for name, value in pairs.items()).strip()


def _set_cookie_values(response: requests.Response) -> list[str]:
    """All ``Set-Cookie`` values of a response, unmerged."""
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return list(raw_headers.getlist("Set-Cookie"))
    header = response.headers.get("Set-Cookie")
    return [header] if header else []


def _rewind(files: Optional[dict]) -> None:
    """Seek upload handles back to the start before a (re)send."""
    for value in (files or {}).values():
        handle = value[1] if isinstance(value, tuple) else value
        if hasattr(handle, "seek"):
            handle.seek(0)


def _response_body(response: requests.Response) -> Any:
    """Parsed JSON body, or the text body when it isn't JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text


class DocuwareClient:
    """
    Client for the DocuWare platform API.

    Features:
    - Credential / token / cookie authentication
    - Cabinet lookup by name
    - Tabular, single-document, query and predicate document retrieval
    - Field update, upload and download
    - Bounded retry with jittered backoff on non-200 responses
    """

    DEFAULT_TIMEOUT = 60
    BATCH_SIZE = 1000
    DEFAULT_ORGANIZATION_ID = "1"
    TOKEN_LIFETIME = "1.00:00:00"

    def __init__(
        self,
        endpoint: str,
        cookie: str = "",
        retry_policy: Optional[RetryPolicy] = None,
        timeout: int = DEFAULT_TIMEOUT,
        organization: str = "",
        organization_id: str = DEFAULT_ORGANIZATION_ID,
        document_id_field: str = DEFAULT_DOCUMENT_ID_FIELD,
    ):
        """
        Initialize DocuWare client.

        Args:
            endpoint: DocuWare instance URL (e.g., "https://example.docuware.cloud")
            cookie: Existing session cookie, if already authenticated
            retry_policy: Retry policy for non-200 responses
            timeout: Request timeout in seconds
            organization: Organization name sent at credential logon
            organization_id: Organization whose cabinets are listed
            document_id_field: Field holding the document id in tabular results
        """
        self.state = DocuwareSession(endpoint=endpoint.rstrip("/"), cookie=cookie)
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.organization = organization
        self.organization_id = organization_id
        self.document_id_field = document_id_field

        # The Cookie header is managed explicitly; keep requests' jar empty
        self.session = requests.Session()
        self.session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
        self.session.headers.update({"Accept": "application/json"})

    @property
    def endpoint(self) -> str:
        return self.state.endpoint

    @property
    def cookie(self) -> str:
        return self.state.cookie

    def _cookie_header(self) -> dict[str, str]:
        return {"Cookie": self.state.cookie} if self.state.cookie else {}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _auth_post(self, path: str, **kwargs) -> requests.Response:
        """POST to an auth endpoint; auth calls are never retried."""
        url = self.state.url(path)
        try:
            response = self.session.post(url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise DocuwareAuthError(f"Request to {url} failed: {e}") from e

        if not response.ok:
            raise DocuwareAuthError(
                f"{path} returned {response.status_code} {response.reason}"
            )
        return response

    def generate_token(self, username: str, password: str, host_id: str) -> str:
        """
        Log on with credentials and issue a reusable login token.

        The token is multi-use and valid for 24 hours. The interim logon cookie
        stays on the session.

        Returns:
            The login token
        """
        form = {
            "Username": username,
            "Password": password,
            "Organization": self.organization,
            "HostID": host_id,
            "RedirectToMyselfInCaseOfError": "false",
            "RememberMe": "true",
        }
        response = self._auth_post(
            f"{PLATFORM}/Account/Logon",
            files={key: (None, value) for key, value in form.items()},
        )
        login_cookie = format_cookie(_set_cookie_values(response))
        if not login_cookie:
            raise DocuwareAuthError("Logon response did not set a session cookie")

        response = self._auth_post(
            f"{PLATFORM}/Organization/LoginToken",
            headers={"Content-Type": "application/json", "Cookie": login_cookie},
            data=json.dumps({
                "TargetProducts": ["PlatformService"],
                "Usage": "Multi",
                "Lifetime": self.TOKEN_LIFETIME,
            }),
        )
        token = _response_body(response)
        if not isinstance(token, str) or not token:
            raise DocuwareAuthError("LoginToken response did not contain a token")

        self.state.cookie = login_cookie
        logger.info("Issued login token for %s", username)
        return token

    def init_auth_from_token(self, token: str) -> str:
        """Exchange a login token for a fresh session cookie."""
        response = self._auth_post(
            f"{PLATFORM}/Account/TokenLogOn",
            headers=self._cookie_header(),
            data={
                "Token": token,
                "LicenseType": "PlatformService",
                "RememberMe": "false",
            },
        )
        cookie = format_cookie(_set_cookie_values(response))
        if not cookie:
            raise DocuwareAuthError("TokenLogOn response did not set a session cookie")

        self.state.cookie = cookie
        logger.debug("Session cookie refreshed from token")
        return cookie

    def init_auth_from_creds(self, username: str, password: str, host_id: str) -> str:
        """Credential logon followed by token exchange. Returns the session cookie."""
        token = self.generate_token(username, password, host_id)
        return self.init_auth_from_token(token)

    def use_cookie(self, cookie: str) -> None:
        """Adopt a cookie generated earlier (e.g. by ``gencookie``)."""
        self.state.cookie = cookie

    # ------------------------------------------------------------------
    # Request wrapper
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, stream: bool = False, **kwargs) -> Any:
        """
        Issue a request, retrying non-200 responses per the retry policy.

        Returns:
            The body (JSON-decoded when possible), the open response when
            ``stream`` is set, or None on transport failure or when every
            attempt failed.
        """
        url = self.state.url(path)
        headers = self._cookie_header()
        headers.update(kwargs.pop("headers", {}))
        policy = self.retry_policy

        def send() -> requests.Response:
            _rewind(kwargs.get("files"))
            return self.session.request(
                method=method,
                url=url,
                headers=headers,
                timeout=self.timeout,
                stream=stream,
                **kwargs,
            )

        def before_sleep(retry_state: RetryCallState) -> None:
            response = retry_state.outcome.result()
            response.close()
            logger.warning(
                "%s %s returned %s (attempt %d/%d), retrying in %ss",
                method, path, response.status_code, retry_state.attempt_number,
                policy.max_attempts, retry_state.next_action.sleep,
            )

        def give_up(retry_state: RetryCallState) -> None:
            retry_state.outcome.result().close()
            logger.warning("%s %s gave up after %d attempts", method, path, policy.max_attempts)
            return None

        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=PolicyWait(policy),
            retry=retry_if_result(lambda response: response.status_code != 200),
            before_sleep=before_sleep,
            retry_error_callback=give_up,
        )
        try:
            response = retrying(send)
        except requests.exceptions.RequestException as e:
            logger.error("%s %s failed: %s", method, url, e)
            return None

        if response is None:
            return None
        if stream:
            return response
        return _response_body(response)

    def get_request(self, path: str, stream: bool = False) -> Any:
        return self._request("GET", path, stream=stream)

    def post_request(
        self,
        path: str,
        data: Any = None,
        json_data: Optional[dict] = None,
        files: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> Any:
        headers = {"Content-Type": content_type} if content_type else {}
        return self._request("POST", path, data=data, json=json_data, files=files, headers=headers)

    def _require(self, body: Any, what: str) -> Any:
        if body is None:
            raise DocuwareAPIError(None, f"No response for {what}")
        return body

    # ------------------------------------------------------------------
    # Organizations and cabinets
    # ------------------------------------------------------------------

    def get_organizations(self) -> list[dict]:
        """List organizations visible to the session."""
        data = self._require(self.get_request(f"{PLATFORM}/Organizations"), "organizations")
        return data.get("Organization", [])

    def get_file_cabinets(self, org_id: Optional[str] = None) -> list[Cabinet]:
        """List file cabinets of an organization."""
        org_id = org_id or self.organization_id
        data = self._require(
            self.get_request(f"{PLATFORM}/FileCabinets?orgid={org_id}"), "file cabinets"
        )
        return [Cabinet.from_api_response(c) for c in data.get("FileCabinet", [])]

    def get_file_cabinet(self, cabinet_id: str) -> dict:
        """Get file cabinet details."""
        return self._require(
            self.get_request(f"{PLATFORM}/FileCabinets/{cabinet_id}"), f"cabinet {cabinet_id}"
        )

    def get_cabinet_ids_from_name(self, cabinet_name: str) -> list[str]:
        return [c.id for c in self.find_cabinets(cabinet_name)]

    def find_cabinets(
        self, cabinet_name: str, cabinets: Optional[list[Cabinet]] = None
    ) -> list[Cabinet]:
        """Every cabinet with this exact name, in listing order."""
        if cabinets is None:
            cabinets = self.get_file_cabinets()
        return [c for c in cabinets if c.name == cabinet_name]

    def find_cabinet(
        self, cabinet_name: str, cabinets: Optional[list[Cabinet]] = None
    ) -> Optional[Cabinet]:
        """First cabinet with this exact name, or None."""
        matches = self.find_cabinets(cabinet_name, cabinets)
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def get_all_documents_from_cabinet(self, cabinet_id: str) -> list[DocuwareDocument]:
        """
        Fetch every document in a cabinet through the tabular listing.

        Pages of ``BATCH_SIZE`` are requested until one comes back empty. The
        column names are taken from the first page.
        """
        documents: list[DocuwareDocument] = []
        header_names: Optional[list[str]] = None
        start = 0
        while True:
            page = self._require(
                self.get_request(
                    f"{PLATFORM}/FileCabinets/{cabinet_id}/Documents"
                    f"?format=table&start={start}&count={self.BATCH_SIZE}"
                ),
                f"documents of cabinet {cabinet_id} from {start}",
            )
            if header_names is None:
                header_names = table_header_names(page)
            if not page.get("Rows"):
                break

            documents.extend(
                documents_from_table_page(page, header_names, cabinet_id, self.document_id_field)
            )
            start += self.BATCH_SIZE

        logger.debug("Fetched %d documents from cabinet %s", len(documents), cabinet_id)
        return documents

    def get_document(self, cabinet_id: str, document_id: str) -> DocuwareDocument:
        """Get one document's fields by id."""
        data = self._require(
            self.get_request(f"{PLATFORM}/FileCabinets/{cabinet_id}/Documents/{document_id}"),
            f"document {document_id}",
        )
        return DocuwareDocument.from_fields(data.get("Fields") or [], cabinet_id, document_id)

    def get_documents_with_query(self, cabinet_id: str, query: str) -> list[DocuwareDocument]:
        """
        Run a server-side query expression (``NAME = [VALUE] | ...``).

        Raises:
            QuerySyntaxError: the expression is malformed
        """
        body = build_query_body(query)
        link = self._require(
            self.post_request(
                f"{PLATFORM}/FileCabinets/{cabinet_id}/Query/DialogExpressionLink",
                json_data=body,
                content_type="application/json",
            ),
            "query expression link",
        )
        if not isinstance(link, str):
            raise DocuwareAPIError(None, f"Unexpected query link response: {link!r}")

        # The returned link carries one extra leading character
        result = self._require(self.get_request(link[1:]), "query results")
        return documents_from_query_result(result, cabinet_id, self.document_id_field)

    def get_documents_with_predicate(
        self, cabinet_id: str, expression: str
    ) -> list[DocuwareDocument]:
        """
        Filter a cabinet client-side with a predicate over ``fields``.

        NOTE: fetches the whole cabinet before filtering.

        Raises:
            PredicateSyntaxError: the expression is not supported
        """
        predicate = compile_predicate(expression)
        documents = self.get_all_documents_from_cabinet(cabinet_id)
        return [doc for doc in documents if predicate(doc.row)]

    def update_document(self, cabinet_id: str, document_id: Any, fields: dict[str, Any]) -> Any:
        """Overwrite index fields of one document."""
        body = {
            "Field": [
                {"FieldName": name, "Item": value, "ItemElementName": "String"}
                for name, value in fields.items()
            ]
        }
        return self._require(
            self.post_request(
                f"{PLATFORM}/FileCabinets/{cabinet_id}/Documents/{document_id}/Fields",
                data=json.dumps(body),
                content_type="application/json",
            ),
            f"update of document {document_id}",
        )

    def upload_document(self, cabinet_id: str, file_path: Path) -> dict:
        """Upload a file as a new document. Returns the created document."""
        file_path = Path(file_path)
        with open(file_path, "rb") as f:
            data = self.post_request(
                f"{PLATFORM}/FileCabinets/{cabinet_id}/Documents",
                files={"file": (file_path.name, f)},
            )
        return self._require(data, f"upload of {file_path.name}")

    def download_document(self, cabinet_id: str, document_id: Any) -> Optional[requests.Response]:
        """Open a streaming download of a document's file."""
        return self.get_request(
            f"{PLATFORM}/FileCabinets/{cabinet_id}/Documents/{document_id}/FileDownload"
            "?targetFileType=Auto&keepAnnotations=false",
            stream=True,
        )

    def save_document(self, cabinet_id: str, document_id: Any, target_path: Path) -> Path:
        """Stream a document's file to disk; the file is closed on return."""
        response = self._require(
            self.download_document(cabinet_id, document_id), f"download of document {document_id}"
        )
        target_path = Path(target_path)
        try:
            with open(target_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            target_path.unlink(missing_ok=True)
            raise DocuwareAPIError(None, f"Download of document {document_id} interrupted: {e}") from e
        finally:
            response.close()
        return target_path


def document_link(client: DocuwareClient, upload_response: dict) -> Optional[str]:
    """Absolute URL of the ``self`` link in an upload response."""
    for link in upload_response.get("Links", []):
        if link.get("rel") == "self":
            return client.endpoint + link.get("href", "")
    return None
