"""Remote service client for the FieldVision REST API."""
import asyncio
import logging
import time

import requests
from pydantic import ValidationError
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
)

from shared.schemas import (
    ProjectDTO, FolderDTO, PhotoDTO, PhotoPage, CommentDTO, UploadTarget, ShareLinkDTO,
    CreateCommentRequest,
)
from ..errors import RemoteRejectedError, NetworkUnavailableError, UploadFailedError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (408, 429)


def _is_transient_upload_error(exc):
    if isinstance(exc, NetworkUnavailableError):
        return True
    return isinstance(exc, UploadFailedError) and (exc.status_code or 0) >= 500


class RemoteService:
    """HTTP client for the sync API with error mapping and retry logic.

    Blocking requests calls run in a worker thread through asyncio.to_thread,
    so the public coroutines only suspend the awaiting caller.
    """

    def __init__(self, base_url, access_token=None, timeout=30.0, upload_timeout=300.0,
                 max_retries=3, retry_delay=1.0, upload_retry_attempts=3, session=None):
        self.base_url = base_url.rstrip('/')
        self.access_token = access_token
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.upload_retry_attempts = max(1, upload_retry_attempts)
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config):
        return cls(
            config.api_url,
            access_token=config.access_token or None,
            timeout=config.api_timeout,
            upload_timeout=config.upload_timeout,
            max_retries=config.api_max_retries,
            retry_delay=config.api_retry_delay,
            upload_retry_attempts=config.upload_retry_attempts,
        )

    def set_access_token(self, token):
        self.access_token = token

    def _get_auth_headers(self):
        headers = {}
        if self.access_token:
            headers['Authorization'] = f"Bearer {self.access_token}"
        return headers

    def _merge_headers(self, kwargs):
        """Merge auth headers with any provided headers in kwargs."""
        auth_headers = self._get_auth_headers()
        if not auth_headers:
            return kwargs
        existing_headers = kwargs.get('headers') or {}
        kwargs['headers'] = {**existing_headers, **auth_headers}
        return kwargs

    def _make_request(self, method, endpoint, **kwargs):
        """Make an authenticated HTTP request with retry logic.

        Server errors, 408, 429 and connection failures are retried with
        exponential backoff; other client errors are returned immediately.

        Raises:
            RemoteRejectedError: Non-2xx status after retries.
            NetworkUnavailableError: Connection failure or timeout after retries.
        """
        url = f"{self.base_url}{endpoint}"
        kwargs = self._merge_headers(kwargs)
        kwargs.setdefault('timeout', self.timeout)

        last_exception = None
        response = None

        for attempt in range(self.max_retries):
            try:
                response = self.session.request(method, url, **kwargs)
                last_exception = None
                if 200 <= response.status_code < 300:
                    return response
                # Don't retry on client errors except timeout and rate limit
                if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_STATUS_CODES:
                    break

                if attempt < self.max_retries - 1:
                    self.logger.warning(f"Request failed (attempt {attempt + 1}/{self.max_retries}): "
                                        f"{method} {endpoint} -> {response.status_code}")
                    time.sleep(self.retry_delay * (2 ** attempt))

            except requests.exceptions.RequestException as e:
                last_exception = e
                response = None
                if attempt < self.max_retries - 1:
                    self.logger.warning(f"Request exception (attempt {attempt + 1}/{self.max_retries}): {e}")
                    time.sleep(self.retry_delay * (2 ** attempt))
                else:
                    self.logger.error(f"Request failed after {self.max_retries} attempts: {e}")

        if last_exception is not None:
            raise NetworkUnavailableError(f"{method} {endpoint} failed: {last_exception}") from last_exception

        status = response.status_code
        detail = self._error_detail(response)
        self.logger.error(f"{method} {endpoint} rejected with {status}: {detail}")
        raise RemoteRejectedError(f"{method} {endpoint} returned {status}: {detail}", status_code=status)

    @staticmethod
    def _error_detail(response):
        try:
            body = response.json()
        except ValueError:
            return (response.text or '')[:200]
        if isinstance(body, dict):
            return body.get('error') or body.get('message') or str(body)[:200]
        return str(body)[:200]

    def _request_json(self, method, endpoint, **kwargs):
        response = self._make_request(method, endpoint, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteRejectedError(f"{method} {endpoint} returned invalid JSON",
                                      status_code=response.status_code) from e

    @staticmethod
    def _parse(model, data):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RemoteRejectedError(f"Unexpected {model.__name__} response: {e.error_count()} invalid fields") from e

    async def _call(self, method, endpoint, **kwargs):
        return await asyncio.to_thread(self._request_json, method, endpoint, **kwargs)

    # Projects
    async def get_projects(self):
        data = await self._call('GET', '/projects')
        return [self._parse(ProjectDTO, item) for item in data or []]

    async def create_project(self, request):
        data = await self._call('POST', '/projects', json=request.model_dump(mode='json', exclude_none=True))
        return self._parse(ProjectDTO, data)

    async def update_project(self, project_id, request):
        data = await self._call('PATCH', f'/projects/{project_id}',
                                json=request.model_dump(mode='json', exclude_none=True))
        return self._parse(ProjectDTO, data)

    async def delete_project(self, project_id):
        await self._call('DELETE', f'/projects/{project_id}')

    # Folders
    async def create_folder(self, project_id, request):
        data = await self._call('POST', f'/projects/{project_id}/folders',
                                json=request.model_dump(mode='json', exclude_none=True))
        return self._parse(FolderDTO, data)

    # Photos
    async def get_photos(self, project_id, page=1, limit=50):
        data = await self._call('GET', f'/projects/{project_id}/photos', params={'page': page, 'limit': limit})
        return self._parse(PhotoPage, data)

    async def create_photo(self, request):
        data = await self._call('POST', '/photos', json=request.model_dump(mode='json', exclude_none=True))
        return self._parse(PhotoDTO, data)

    async def get_upload_target(self, project_id, filename, content_type):
        data = await self._call('POST', f'/projects/{project_id}/photos/upload-url',
                                json={'filename': filename, 'content_type': content_type})
        return self._parse(UploadTarget, data)

    def _put_bytes(self, upload_url, data, content_type):
        # Presigned storage URLs carry their own credentials; no auth header.
        try:
            response = self.session.put(upload_url, data=data, headers={'Content-Type': content_type},
                                        timeout=self.upload_timeout)
        except requests.exceptions.RequestException as e:
            raise NetworkUnavailableError(f"Upload failed: {e}") from e
        if not 200 <= response.status_code < 300:
            raise UploadFailedError(f"Upload returned {response.status_code}", status_code=response.status_code)

    def _upload_with_retry(self, upload_url, data, content_type):
        retryer = Retrying(
            stop=stop_after_attempt(self.upload_retry_attempts),
            wait=wait_exponential(multiplier=self.retry_delay, max=30),
            retry=retry_if_exception(_is_transient_upload_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        retryer(self._put_bytes, upload_url, data, content_type)

    async def upload_bytes(self, upload_url, data, content_type):
        """PUT raw media bytes to a presigned upload URL.

        Raises:
            UploadFailedError: Non-2xx response after retries.
            NetworkUnavailableError: Connection failure after retries.
        """
        self.logger.info(f"Uploading {len(data)} bytes ({content_type})")
        await asyncio.to_thread(self._upload_with_retry, upload_url, data, content_type)

    # Comments
    async def create_comment(self, photo_id, text):
        body = CreateCommentRequest(text=text).model_dump(mode='json')
        data = await self._call('POST', f'/photos/{photo_id}/comments', json=body)
        return self._parse(CommentDTO, data)

    # Share links
    async def create_share_link(self, project_id, request):
        data = await self._call('POST', f'/projects/{project_id}/share',
                                json=request.model_dump(mode='json', exclude_none=True))
        return self._parse(ShareLinkDTO, data)

    def close(self):
        self.session.close()
