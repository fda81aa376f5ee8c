"""
Meural API client using Cognito username/password authentication.

This module provides functionality to:
- Authenticate against the Meural identity provider (AWS Cognito)
- List, upload, update and delete items (photos)
- Manage galleries (playlists) and their items
- List devices (frames) and assign galleries to them

Note: This is the private API used by the Meural web app. The access
token is cached for one hour and refreshed lazily on the next call.
"""

import logging
import os
import time
from pathlib import Path
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────────────────
# Exceptions
# ────────────────────────────────────────────────────────────────────────────────

class MeuralError(Exception):
    """Base exception for Meural API errors."""
    pass


class MeuralConfigError(MeuralError):
    """Credentials are missing from the environment."""
    pass


class MeuralAuthError(MeuralError):
    """Authentication failure - credentials rejected or token expired."""
    pass


class MeuralNotFoundError(MeuralError):
    """Requested item, gallery or device does not exist."""
    pass


class MeuralUploadError(MeuralError):
    """Upload operation failed."""
    pass


class MeuralRateLimitError(MeuralError):
    """Rate limit exceeded and retries exhausted."""
    pass


# ────────────────────────────────────────────────────────────────────────────────
# Credentials
# ────────────────────────────────────────────────────────────────────────────────

DEFAULT_PASSWORD_FILE = ".meural-password"


def load_credentials() -> tuple[str | None, str | None]:
    """
    Read Meural credentials from the environment.

    The password is read from MEURAL_PASSWORD_FILE (default
    ".meural-password") when that file exists, so passwords with
    characters like '#' survive .env parsing. Otherwise MEURAL_PASSWORD
    is used.

    Returns:
        (username, password); either may be None.
    """
    username = os.getenv("MEURAL_USERNAME")
    password = os.getenv("MEURAL_PASSWORD")

    password_file = Path(os.getenv("MEURAL_PASSWORD_FILE", DEFAULT_PASSWORD_FILE))
    try:
        if password_file.is_file():
            password = password_file.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning(f"Could not read password file {password_file}: {e}")

    return username, password


# ────────────────────────────────────────────────────────────────────────────────
# Client Implementation
# ────────────────────────────────────────────────────────────────────────────────

class MeuralClient:
    """
    Client for the Meural REST API.

    Usage:
        client = MeuralClient()  # Uses MEURAL_USERNAME / MEURAL_PASSWORD env vars
        # or
        client = MeuralClient(username="me@example.com", password="secret")

        result = client.upload_item(data, "photo.jpg", "image/jpeg")
        client.update_item(result["data"]["id"], {"name": "Paris · Summer"})
    """

    BASE_URL = "https://api.meural.com/v0"
    COGNITO_CLIENT_ID = "487bd4kvb1fnop6mbgk8gu5ibf"
    COGNITO_REGION = "eu-west-1"
    TOKEN_TTL = 3600  # 1 hour

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        max_retries: int = 3,
        timeout: int = 60,
    ):
        """
        Initialize Meural client.

        Args:
            username: Meural account email. If None, reads from environment.
            password: Meural account password. If None, reads from
                      password file or environment.
            max_retries: Maximum number of attempts for failed requests.
            timeout: Request timeout in seconds.
        """
        env_username, env_password = load_credentials()
        self.username = username or env_username
        self.password = password or env_password
        self.max_retries = max_retries
        self.timeout = timeout

        self._token: str | None = None
        self._token_expiry: float = 0.0

        if not self.username or not self.password:
            logger.warning(
                "No Meural credentials provided. Set MEURAL_USERNAME and "
                "MEURAL_PASSWORD (or .meural-password)."
            )

        # Setup requests session with connection pooling
        self._session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
        )
        adapter = HTTPAdapter(
            pool_connections=5,
            pool_maxsize=10,
            max_retries=retry_strategy,
        )
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    # ────────────────────────────────────────────────────────────────────────────
    # Authentication
    # ────────────────────────────────────────────────────────────────────────────

    @property
    def cognito_url(self) -> str:
        return f"https://cognito-idp.{self.COGNITO_REGION}.amazonaws.com/"

    def authenticate(self) -> str:
        """
        Fetch a new access token from Cognito.

        Returns:
            The access token.

        Raises:
            MeuralConfigError: If credentials are missing.
            MeuralAuthError: If Cognito rejects the credentials.
        """
        if not self.username or not self.password:
            raise MeuralConfigError(
                "MEURAL_USERNAME and MEURAL_PASSWORD must be set in .env"
            )

        try:
            response = self._session.post(
                self.cognito_url,
                json={
                    "AuthFlow": "USER_PASSWORD_AUTH",
                    "ClientId": self.COGNITO_CLIENT_ID,
                    "AuthParameters": {
                        "USERNAME": self.username,
                        "PASSWORD": self.password,
                    },
                },
                headers={
                    "Content-Type": "application/x-amz-json-1.1",
                    "X-Amz-Target": "AWSCognitoIdentityProviderService.InitiateAuth",
                },
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise MeuralAuthError(f"Authentication request failed: {e}") from e

        token = (data.get("AuthenticationResult") or {}).get("AccessToken")
        if not response.ok or not token:
            message = data.get("message") or data.get("__type") or data
            raise MeuralAuthError(f"Authentication failed: {message}")

        self._token = token
        self._token_expiry = time.monotonic() + self.TOKEN_TTL
        logger.info("Authenticated with Meural")
        return token

    def get_token(self) -> str:
        """Return the cached access token, authenticating if it expired."""
        if self._token and time.monotonic() < self._token_expiry:
            return self._token
        return self.authenticate()

    def is_authenticated(self) -> bool:
        """
        Check if the credentials are valid.

        Returns:
            True if a token could be obtained, False otherwise.
        """
        try:
            self.get_token()
            return True
        except MeuralError:
            return False

    # ────────────────────────────────────────────────────────────────────────────
    # Request plumbing
    # ────────────────────────────────────────────────────────────────────────────

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with authentication."""
        return {
            "Authorization": f"Token {self.get_token()}",
            "Accept": "application/json",
        }

    def _make_request(
        self,
        method: str,
        path: str,
        idempotent: bool = True,
        **kwargs,
    ) -> requests.Response:
        """
        Make an authenticated HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: Endpoint path relative to BASE_URL
            idempotent: If False, network errors are not retried.
            **kwargs: Additional arguments passed to requests

        Returns:
            Response object

        Raises:
            MeuralAuthError: If authentication fails
            MeuralNotFoundError: If the resource does not exist
            MeuralRateLimitError: If still rate limited after retries
            MeuralError: For other errors
        """
        url = f"{self.BASE_URL}/{path.lstrip('/')}"
        kwargs.setdefault("timeout", self.timeout)
        extra_headers = kwargs.pop("headers", {})

        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            headers = {**self._get_headers(), **extra_headers}
            try:
                response = self._session.request(method, url, headers=headers, **kwargs)
            except requests.exceptions.RetryError as e:
                # The adapter has already retried the 5xx responses
                raise MeuralError(f"{method} {path} failed after adapter retries: {e}") from e
            except requests.exceptions.RequestException as e:
                last_error = e
                logger.warning(
                    f"Request attempt {attempt}/{self.max_retries} failed: {e}"
                )
                if not idempotent:
                    break
                if attempt < self.max_retries:
                    sleep_time = 2 ** attempt
                    logger.debug(f"Sleeping {sleep_time}s before retry")
                    time.sleep(sleep_time)
                continue

            if response.status_code == 401:
                self._token = None
                raise MeuralAuthError("Access token rejected by Meural. Re-authenticate.")

            if response.status_code == 404:
                raise MeuralNotFoundError(f"{method} {path}: not found")

            if response.status_code == 429:
                retry_after = self._retry_after(response, attempt)
                last_error = MeuralRateLimitError(
                    f"Rate limited. Retry after {retry_after} seconds."
                )
                logger.warning(
                    f"Rate limited on {method} {path} "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                if attempt < self.max_retries:
                    time.sleep(retry_after)
                    continue
                raise last_error

            if not response.ok:
                raise MeuralError(
                    f"{method} {path} failed with HTTP {response.status_code}: "
                    f"{response.text[:500]}"
                )

            return response

        raise MeuralError(
            f"Request failed after {attempt} attempts: {last_error}"
        )

    @staticmethod
    def _retry_after(response: requests.Response, attempt: int) -> int:
        """Seconds to wait after a 429: the Retry-After header or 2^attempt."""
        try:
            return int(response.headers.get("Retry-After", ""))
        except ValueError:
            return 2 ** attempt

    @staticmethod
    def _json(response: requests.Response) -> Any:
        """Decode a JSON body; empty bodies decode to an empty dict."""
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    def _request_json(self, method: str, path: str, **kwargs) -> Any:
        return self._json(self._make_request(method, path, **kwargs))

    # ────────────────────────────────────────────────────────────────────────────
    # User and items
    # ────────────────────────────────────────────────────────────────────────────

    def get_user(self) -> dict[str, Any]:
        """Get account info, including storage usage."""
        return self._request_json("GET", "/user")

    def list_items(self, page: int = 1, count: int = 100) -> dict[str, Any]:
        """
        Fetch a page of the user's items.

        Args:
            page: Page number (1-indexed)
            count: Number of items per page

        Returns:
            Dictionary with item data and pagination info.
        """
        return self._request_json(
            "GET", "/user/items", params={"page": page, "count": count}
        )

    def get_item(self, item_id: int | str) -> dict[str, Any] | None:
        """
        Get a single item.

        Returns:
            Item response, or None if the item does not exist.
        """
        try:
            return self._request_json("GET", f"/items/{item_id}")
        except MeuralNotFoundError:
            return None

    def upload_item(
        self,
        data: bytes,
        filename: str,
        mime_type: str | None = None,
    ) -> dict[str, Any]:
        """
        Upload an image as a new item.

        Args:
            data: Image bytes.
            filename: Filename reported to Meural.
            mime_type: Content type of the bytes.

        Returns:
            Upload response; the new item ID is at ["data"]["id"].

        Raises:
            MeuralUploadError: If upload fails.
        """
        try:
            result = self._request_json(
                "POST",
                "/items",
                idempotent=False,
                files={"image": (filename, data, mime_type or "image/jpeg")},
                timeout=self.timeout * 2,  # Longer timeout for uploads
            )
        except (MeuralAuthError, MeuralConfigError, MeuralRateLimitError):
            raise
        except MeuralError as e:
            raise MeuralUploadError(f"Failed to upload {filename}: {e}") from e

        logger.info(f"Uploaded {filename} to Meural")
        return result

    def update_item(self, item_id: int | str, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Update item metadata (name, description, etc.).

        Args:
            item_id: Meural item ID.
            fields: Fields to set.

        Returns:
            Updated item data.
        """
        result = self._request_json("PUT", f"/items/{item_id}", json=fields)
        logger.debug(f"Updated item {item_id}: {sorted(fields)}")
        return result

    def delete_item(self, item_id: int | str) -> dict[str, Any]:
        """Delete an item."""
        result = self._request_json("DELETE", f"/items/{item_id}")
        logger.info(f"Deleted item {item_id}")
        return result

    def download_image(self, url: str) -> bytes:
        """
        Download an item's image from its storage URL.

        Args:
            url: Absolute image URL from the item data.

        Returns:
            Image bytes.
        """
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise MeuralError(f"Failed to download {url}: {e}") from e
        return response.content

    # ────────────────────────────────────────────────────────────────────────────
    # Galleries
    # ────────────────────────────────────────────────────────────────────────────

    def list_galleries(self) -> dict[str, Any]:
        """Get the user's galleries (playlists)."""
        return self._request_json("GET", "/user/galleries")

    def list_gallery_items(
        self,
        gallery_id: int | str,
        page: int = 1,
        count: int = 100,
    ) -> dict[str, Any]:
        """Fetch a page of a gallery's items."""
        return self._request_json(
            "GET",
            f"/galleries/{gallery_id}/items",
            params={"page": page, "count": count},
        )

    def create_gallery(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Create a gallery."""
        return self._request_json("POST", "/galleries", idempotent=False, json=fields)

    def update_gallery(self, gallery_id: int | str, fields: dict[str, Any]) -> dict[str, Any]:
        """Update a gallery."""
        return self._request_json("PUT", f"/galleries/{gallery_id}", json=fields)

    def delete_gallery(self, gallery_id: int | str) -> dict[str, Any]:
        """Delete a gallery."""
        return self._request_json("DELETE", f"/galleries/{gallery_id}")

    def add_item_to_gallery(self, gallery_id: int | str, item_id: int | str) -> dict[str, Any]:
        """Add an item to a gallery."""
        return self._request_json("POST", f"/galleries/{gallery_id}/items/{item_id}")

    def remove_item_from_gallery(
        self,
        gallery_id: int | str,
        item_id: int | str,
    ) -> dict[str, Any]:
        """Remove an item from a gallery."""
        return self._request_json("DELETE", f"/galleries/{gallery_id}/items/{item_id}")

    # ────────────────────────────────────────────────────────────────────────────
    # Devices
    # ────────────────────────────────────────────────────────────────────────────

    def list_devices(self) -> dict[str, Any]:
        """Get the user's devices (frames)."""
        return self._request_json("GET", "/user/devices")

    def list_device_galleries(self, device_id: int | str) -> dict[str, Any]:
        """Get the galleries assigned to a device."""
        return self._request_json("GET", f"/devices/{device_id}/galleries")

    def add_gallery_to_device(
        self,
        device_id: int | str,
        gallery_id: int | str,
    ) -> dict[str, Any]:
        """Assign a gallery to a device."""
        return self._request_json("POST", f"/devices/{device_id}/galleries/{gallery_id}")

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
        logger.debug("Meural session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
