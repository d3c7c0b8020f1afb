import logging
import threading
from typing import Any

import requests

from ..config import Config

logger = logging.getLogger(__name__)

# WooCommerce caps per_page at 100 for the customers collection
MAX_PAGE_SIZE = 100


class WordPressClient:
    """WooCommerce REST client for the customer accounts linked to clients.

    Authenticates with a WordPress application password over HTTP basic auth.
    Sessions are thread-local because MCP handlers call in from worker
    threads.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = f"{config.wordpress_url.rstrip('/')}/wp-json"
        self.timeout = (config.connect_timeout, config.request_timeout)

    @property
    def session(self) -> requests.Session:
        """Session for the calling thread."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (
            self.config.wordpress_username,
            self.config.wordpress_password,
        )
        session.verify = not self.config.insecure
        session.headers.update({"Accept": "application/json"})
        return session

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Send a request to the REST API and return the raw response.

        HTTP errors are not raised here so callers can treat 404 as absence.
        """
        url = f"{self.api_url}/{path.lstrip('/')}"
        logger.debug("%s %s", method, url)
        return self._get_session().request(
            method, url, timeout=self.timeout, **kwargs
        )

    def list_users(self, page: int = 1, per_page: int = MAX_PAGE_SIZE) -> list[dict[str, Any]]:
        """
        List one page of customer accounts across all roles, ordered by id.
        """
        response = self._request(
            "GET",
            "wc/v3/customers",
            params={
                "role": "all",
                "page": page,
                "per_page": min(per_page, MAX_PAGE_SIZE),
                "orderby": "id",
                "order": "asc",
            },
        )
        response.raise_for_status()
        return response.json()

    def get_user(self, user_id: int) -> dict[str, Any] | None:
        """
        Get a customer account by id, or None if it does not exist.
        """
        response = self._request("GET", f"wc/v3/customers/{user_id}")
        if response.status_code in (400, 404):
            # WooCommerce answers an unknown id with 400 "invalid id" on some versions
            return None
        response.raise_for_status()
        return response.json()

    def update_user(self, user_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Update a customer account and return its new representation.
        """
        response = self._request(
            "PUT", f"wc/v3/customers/{user_id}", json=payload
        )
        response.raise_for_status()
        return response.json()

    def validate_connection(self) -> str:
        """
        Confirm the credentials work and return the authenticated user's name.

        Raises:
            requests.HTTPError: If the site rejects the application password.
        """
        response = self._request(
            "GET", "wp/v2/users/me", params={"context": "edit"}
        )
        response.raise_for_status()
        data = response.json()
        return data.get("username") or data.get("name") or str(data.get("id"))
