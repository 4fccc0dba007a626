"""HTTP clients for the Azure DevOps REST and GitHub GraphQL APIs."""

import base64
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..config.config import AdoInstanceConfig, GitHubInstanceConfig
from .exceptions import (
    APIError,
    AuthenticationError,
    ForbiddenError,
    GraphQLError,
    NotFoundError,
    RateLimitError,
)
from .rate_limiter import RateLimiter

USER_AGENT = 'ado-github-migrate/0.1.0'

ADO_CONTINUATION_HEADER = 'x-ms-continuationtoken'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


class BaseAPIClient:
    """Shared request plumbing: auth headers, throttling and error mapping."""

    def __init__(
        self,
        base_url: str,
        auth_headers: Dict[str, str],
        timeout: int = 30,
        rate_limit_per_second: float = 10.0,
    ):
        """Initialize API client.

        Args:
            base_url: Root URL that relative endpoints are joined to
            auth_headers: Authentication headers sent with every request
            timeout: Request timeout in seconds
            rate_limit_per_second: Client-side request rate limit
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.rate_limiter = RateLimiter(rate_limit_per_second)
        self.headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
            **auth_headers,
        }

        self.session = requests.Session()
        self.session.headers.update(self.headers)

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from an endpoint (absolute URLs pass through).

        Args:
            endpoint: API endpoint path or absolute URL

        Returns:
            Full API URL
        """
        if endpoint.startswith(('http://', 'https://')):
            return endpoint
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    @staticmethod
    def _raise_for_status(
        status: int, headers: Dict[str, str], error_data: Any, text: str
    ) -> None:
        if status == 429:
            retry_after = int(headers.get('Retry-After', 60))
            raise RateLimitError(
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                retry_after=retry_after,
                status_code=status,
            )

        # Azure DevOps answers a bad PAT with a 203 sign-in page
        if status in (401, 203):
            raise AuthenticationError('Authentication failed', status_code=status)

        if status == 403:
            raise ForbiddenError(
                'Permission denied', status_code=status, response_data=error_data
            )

        if status == 404:
            raise NotFoundError(
                'Resource not found', status_code=status, response_data=error_data
            )

        if status >= 400:
            if isinstance(error_data, dict) and error_data.get('message'):
                message = error_data['message']
            else:
                message = f'HTTP {status}: {text}'
            raise APIError(
                f'API request failed: {message}',
                status_code=status,
                response_data=error_data,
            )

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        **kwargs,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint or absolute URL
            params: Query parameters
            data: JSON request body
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        await self.rate_limiter.acquire()

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(headers=self.headers, timeout=timeout) as session:
            try:
                async with session.request(
                    method=method, url=url, params=params, json=data, **kwargs
                ) as response:
                    response_headers = {k: v for k, v in response.headers.items()}
                    response_text = await response.text()

                    try:
                        response_data = (
                            json.loads(response_text) if response_text else None
                        )
                    except ValueError:
                        response_data = response_text

                    self._raise_for_status(
                        response.status, response_headers, response_data, response_text
                    )

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

            except aiohttp.ClientError as e:
                logger.error(f'Network error during {method} {url}: {e}')
                raise APIError(f'Network error: {e}')

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self._make_request_async('GET', endpoint, params=params, **kwargs)

    async def post_async(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous POST request."""
        return await self._make_request_async('POST', endpoint, data=data, **kwargs)

    async def put_async(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous PUT request."""
        return await self._make_request_async('PUT', endpoint, data=data, **kwargs)

    async def download_file_async(self, url: str, destination: str) -> Path:
        """Download a file without sending credentials.

        Args:
            url: Absolute URL of the file (usually pre-signed)
            destination: Local file path

        Returns:
            Path of the written file
        """
        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(
            headers={'User-Agent': USER_AGENT}, timeout=timeout
        ) as session:
            try:
                async with session.get(url) as response:
                    if response.status >= 400:
                        raise APIError(
                            f'Download failed: HTTP {response.status}',
                            status_code=response.status,
                        )
                    with open(target, 'wb') as f:
                        async for chunk in response.content.iter_chunked(64 * 1024):
                            f.write(chunk)
            except aiohttp.ClientError as e:
                logger.error(f'Network error while downloading {url}: {e}')
                raise APIError(f'Network error: {e}')

        return target

    def _connection_probe_url(self) -> str:
        raise NotImplementedError

    def test_connection(self) -> bool:
        """Test that the configured credentials are accepted.

        Returns:
            True if connection successful, False otherwise
        """
        url = self._connection_probe_url()
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f'Connection test failed: {e}')
            return False

        if response.status_code != 200:
            logger.error(f'Connection test failed: HTTP {response.status_code}')
            return False
        return True

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.debug(f'{type(self).__name__} session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class AdoClient(BaseAPIClient):
    """Azure DevOps REST client authenticated with a PAT."""

    def __init__(self, config: AdoInstanceConfig):
        """Initialize Azure DevOps client.

        Args:
            config: Azure DevOps instance configuration
        """
        if not config.pat:
            raise AuthenticationError('No Azure DevOps PAT provided')

        token = base64.b64encode(f':{config.pat}'.encode('utf-8')).decode('ascii')
        super().__init__(
            config.url,
            {'Authorization': f'Basic {token}'},
            timeout=config.timeout,
            rate_limit_per_second=config.rate_limit_per_second,
        )
        self.config = config
        logger.debug(f'Initialized Azure DevOps client for {config.url}')

    def _connection_probe_url(self) -> str:
        if 'dev.azure.com' in self.base_url:
            return 'https://app.vssps.visualstudio.com/_apis/profile/profiles/me?api-version=5.0'
        return self._build_url('_apis/connectionData')

    async def get_with_paging(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Get every item of a continuation-token paged collection.

        Args:
            endpoint: API endpoint or absolute URL
            params: Query parameters

        Returns:
            Items of the ``value`` arrays of all pages
        """
        all_items: List[Dict[str, Any]] = []
        params = dict(params or {})

        while True:
            response = await self.get_async(endpoint, params=params)
            data = response.data or {}
            all_items.extend(data.get('value', []))

            token = next(
                (
                    v
                    for k, v in response.headers.items()
                    if k.lower() == ADO_CONTINUATION_HEADER
                ),
                None,
            )
            if not token:
                break
            params['continuationToken'] = token

        logger.debug(f'Retrieved {len(all_items)} items from {endpoint}')
        return all_items


class GitHubClient(BaseAPIClient):
    """GitHub client for the GraphQL migration API."""

    def __init__(self, config: GitHubInstanceConfig):
        """Initialize GitHub client.

        Args:
            config: GitHub instance configuration
        """
        if not config.token:
            raise AuthenticationError('No GitHub token provided')

        super().__init__(
            config.api_url,
            {
                'Authorization': f'Bearer {config.token}',
                'GraphQL-Features': 'import_api,mannequin_claiming',
            },
            timeout=config.timeout,
            rate_limit_per_second=config.rate_limit_per_second,
        )
        self.config = config
        logger.debug(f'Initialized GitHub client for {config.api_url}')

    def _connection_probe_url(self) -> str:
        return self._build_url('user')

    async def post_graphql(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a GraphQL query or mutation.

        Args:
            query: GraphQL document
            variables: Query variables

        Returns:
            The ``data`` member of the response

        Raises:
            GraphQLError: If the response carries ``errors``
        """
        response = await self.post_async(
            'graphql', data={'query': query, 'variables': variables or {}}
        )
        payload = response.data if isinstance(response.data, dict) else {}

        errors = payload.get('errors')
        if errors:
            message = errors[0].get('message', 'GraphQL request failed')
            raise GraphQLError(
                message,
                errors=errors,
                status_code=response.status_code,
                response_data=payload,
            )

        return payload.get('data') or {}
