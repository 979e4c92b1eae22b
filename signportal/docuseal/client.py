# signportal/docuseal/client.py

import json
from typing import Any, Dict, Optional

import aiohttp

from signportal.core.config import settings
from signportal.utils.logger import get_logger

logger = get_logger(__name__)


class DocusealAPIError(Exception):
    """
    Raised when DocuSeal answers with a non-success status.
    Carries the provider status and the parsed body so they can be relayed as-is.
    """

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(f"DocuSeal API error {status_code}: {body}")


class DocusealClient:
    """
    Thin async client for the DocuSeal REST API.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = (base_url or settings.docuseal_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.docuseal_api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.docuseal_timeout)

    @property
    def is_hosted(self) -> bool:
        """Hosted DocuSeal serves the API at the root, self-hosted under /api."""
        return "api.docuseal.com" in self.base_url

    def url(self, path: str) -> str:
        """Build the absolute URL for an API resource path such as 'submissions/1'."""
        path = path.lstrip("/")
        if self.is_hosted:
            return f"{self.base_url}/{path}"
        return f"{self.base_url}/api/{path}"

    def _headers(self, content_type: Optional[str] = "application/json") -> Dict[str, str]:
        headers = {"X-Auth-Token": self.api_key, "Accept": "application/json"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    @staticmethod
    def _parse_body(text: str) -> Any:
        if not text:
            return {}
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        data: Optional[bytes] = None,
        content_type: Optional[str] = "application/json",
    ) -> Any:
        """
        Perform one request and return the decoded body.
        Raises DocusealAPIError for any non-2xx answer.
        """
        url = self.url(path)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=self._headers(content_type),
            ) as response:
                text = await response.text()
                body = self._parse_body(text)
                if response.status >= 400:
                    logger.error(
                        "DocuSeal request failed",
                        method=method,
                        url=url,
                        status=response.status,
                        body=body,
                    )
                    raise DocusealAPIError(response.status, body)
                return body

    # --- Templates ---

    async def list_templates(self, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("GET", "templates", params=params)

    async def get_template(self, template_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"templates/{template_id}")

    async def create_template_from_file(self, kind: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a template from a base64 document; kind is 'pdf' or 'docx'."""
        return await self._request("POST", f"templates/{kind}", json_body=payload)

    # --- Submissions ---

    async def list_submissions(self, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("GET", "submissions", params=params)

    async def get_submission(self, submission_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"submissions/{submission_id}")

    async def create_submission(self, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", "submissions", json_body=payload)

    async def create_submission_raw(self, body: bytes, content_type: str) -> Any:
        """Forward an already encoded (e.g. multipart) submission request body."""
        return await self._request("POST", "submissions", data=body, content_type=content_type)

    async def delete_submission(self, submission_id: int) -> Any:
        return await self._request(
            "DELETE", f"submissions/{submission_id}", params={"permanently": "true"}
        )

    async def get_submission_documents(self, submission_id: int) -> Any:
        return await self._request("GET", f"submissions/{submission_id}/documents")

    # --- Submitters ---

    async def get_submitter(self, submitter_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"submitters/{submitter_id}")

    async def update_submitter(self, submitter_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"submitters/{submitter_id}", json_body=payload)

    async def send_otp(self, submitter_id: int, email: str) -> Any:
        return await self._request(
            "POST", f"submitters/{submitter_id}/send-otp", json_body={"email": email}
        )

    async def verify_otp(self, submitter_id: int, otp: str) -> Any:
        return await self._request(
            "POST", f"submitters/{submitter_id}/verify-otp", json_body={"otp": otp}
        )


def get_docuseal_client() -> DocusealClient:
    """Dependency returning a client configured from settings."""
    return DocusealClient()
