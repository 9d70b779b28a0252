"""Telegram Bot API channel transport."""

import json
import logging
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

import requests
from urllib3.exceptions import NewConnectionError

from ..constants import DEFAULT_API_BASE, GET_UPDATES_MAX_LIMIT
from ..context import OperationContext, ensure_context
from ..errors import (
    AuthError,
    NotFoundError,
    RateLimitedError,
    TransportError,
)
from ..storage_models import BlobReference, MessageDescriptor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _PermanentTransportError(TransportError):
    """Request rejected in a way a retry cannot fix (4xx other than 429)."""
    pass


class _NotSentError(TransportError):
    """Connection failed before the request reached the server."""
    pass


def _request_not_sent(e: requests.exceptions.RequestException) -> bool:
    if isinstance(e, requests.exceptions.ConnectTimeout):
        return True
    if not isinstance(e, requests.exceptions.ConnectionError) or not e.args:
        return False
    return isinstance(getattr(e.args[0], "reason", None), NewConnectionError)


class TelegramTransport:
    """
    Channel transport over the Telegram Bot API.

    Documents are sent with sendDocument; history comes from getUpdates
    (message and channel_post updates carrying a document), reported oldest
    first as the API returns them; downloads go through getFile.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_base: str = DEFAULT_API_BASE,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 30.0,
        request_timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Telegram transport.

        Args:
            bot_token: Bot API token (never logged)
            chat_id: Destination chat id or @channel username
            api_base: Bot API base URL
            max_retries: Attempts per call for transient failures
            backoff_base: First backoff delay in seconds (doubles per attempt)
            backoff_max: Upper bound for a single backoff delay
            request_timeout: Per-request timeout, further bounded by the caller deadline
            session: Optional requests session (for connection reuse and tests)
        """
        if not bot_token or not chat_id:
            raise ValueError("bot_token and chat_id are required for the Telegram transport")
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.api_base = api_base.rstrip("/")
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        # Bots do not receive updates for their own messages, so documents
        # sent through this transport are merged into scans
        self._sent: deque = deque(maxlen=GET_UPDATES_MAX_LIMIT)

    # ============= Public operations =============

    def upload_blob(
        self, name: str, data: bytes, ctx: Optional[OperationContext] = None
    ) -> MessageDescriptor:
        """Send bytes as a named document to the configured chat.

        Retried only when throttled or when the connection failed before the
        request was sent; a timed-out POST may already have been delivered.
        """
        ctx = ensure_context(ctx)
        logger.debug("Uploading %s (%d bytes)", name, len(data))
        message = self._with_retries(
            f"upload {name}",
            ctx,
            lambda: self._call(
                "sendDocument",
                ctx,
                http_method="POST",
                data={"chat_id": self.chat_id},
                files={"document": (name, data)},
            ),
            # A delivered POST must not be sent twice
            retry_on=(RateLimitedError, _NotSentError),
        )
        descriptor = self._descriptor_from_message(message)
        if descriptor is None:
            raise TransportError(f"sendDocument for {name} returned no document")
        self._sent.append(descriptor)
        return descriptor

    def scan_recent_messages(
        self, limit: int, ctx: Optional[OperationContext] = None
    ) -> List[MessageDescriptor]:
        """Return up to limit most recent documents in the chat, oldest first."""
        ctx = ensure_context(ctx)
        if limit <= 0:
            return []
        if limit > GET_UPDATES_MAX_LIMIT:
            logger.debug(
                "Lookback window %d exceeds getUpdates limit, scanning %d",
                limit, GET_UPDATES_MAX_LIMIT
            )
        updates = self._with_retries(
            "scan",
            ctx,
            lambda: self._call(
                "getUpdates",
                ctx,
                params={
                    # Negative offset: the most recent updates, not the oldest pending ones
                    "offset": -GET_UPDATES_MAX_LIMIT,
                    "limit": GET_UPDATES_MAX_LIMIT,
                    "allowed_updates": json.dumps(["message", "channel_post"]),
                },
            ),
        )
        descriptors = []
        for update in updates or []:
            message = update.get("message") or update.get("channel_post")
            if not message or not self._is_our_chat(message):
                continue
            descriptor = self._descriptor_from_message(message)
            if descriptor is not None:
                descriptors.append(descriptor)
        descriptors = self._merge_sent(descriptors)
        logger.debug("Scan returned %d documents", len(descriptors))
        return descriptors[-limit:]

    def download_blob(
        self, ref: BlobReference, ctx: Optional[OperationContext] = None
    ) -> bytes:
        """Resolve ref via getFile and download its content."""
        ctx = ensure_context(ctx)
        info = self._with_retries(
            "getFile",
            ctx,
            lambda: self._call("getFile", ctx, params={"file_id": ref.file_id}, missing_is_not_found=True),
        )
        file_path = (info or {}).get("file_path")
        if not file_path:
            raise NotFoundError(f"Blob {ref.file_id} has no downloadable file path")
        url = f"{self.api_base}/file/bot{self.bot_token}/{file_path}"
        return self._with_retries("download", ctx, lambda: self._fetch_file(url, ref, ctx))

    # ============= Internals =============

    def _with_retries(
        self,
        operation: str,
        ctx: OperationContext,
        fn: Callable[[], T],
        retry_on: Tuple[Type[TransportError], ...] = (TransportError,),
    ) -> T:
        """Run fn, retrying failures of the retry_on types with exponential backoff."""
        attempt = 1
        while True:
            ctx.check(operation)
            try:
                return fn()
            except _PermanentTransportError:
                raise
            except TransportError as e:
                if not isinstance(e, retry_on) or attempt >= self.max_retries:
                    raise
                if isinstance(e, RateLimitedError) and e.retry_after is not None:
                    delay = e.retry_after
                else:
                    delay = self._backoff(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    operation, attempt, self.max_retries, e, delay
                )
            ctx.sleep(delay, operation)
            attempt += 1

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))

    def _call(
        self,
        method: str,
        ctx: OperationContext,
        http_method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        missing_is_not_found: bool = False,
    ) -> Any:
        """Invoke a Bot API method and return its result field."""
        url = f"{self.api_base}/bot{self.bot_token}/{method}"
        try:
            resp = self.session.request(
                http_method,
                url,
                params=params,
                data=data,
                files=files,
                timeout=ctx.timeout_for(self.request_timeout),
            )
        except requests.exceptions.RequestException as e:
            error = _NotSentError if _request_not_sent(e) else TransportError
            raise error(f"{method} request failed: {self._redact(str(e))}") from None

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            if resp.status_code >= 500:
                raise TransportError(f"{method}: server error {resp.status_code}")
            raise TransportError(
                f"{method}: expected JSON but got {resp.headers.get('content-type', 'unknown')} "
                f"(status {resp.status_code})"
            )

        if payload.get("ok"):
            return payload.get("result")

        code = payload.get("error_code", resp.status_code)
        description = payload.get("description", "unknown error")
        self._raise_for_error(method, code, description, payload.get("parameters") or {}, missing_is_not_found)

    def _raise_for_error(
        self,
        method: str,
        code: int,
        description: str,
        parameters: Dict[str, Any],
        missing_is_not_found: bool,
    ) -> None:
        """Map a Bot API error response onto the error taxonomy."""
        if code == 429:
            raise RateLimitedError(f"{method}: {description}", retry_after=parameters.get("retry_after"))
        if code in (401, 403):
            raise AuthError(f"{method}: credentials rejected ({code} {description})")
        if code == 404:
            # The Bot API answers 404 for a malformed or unknown token
            raise AuthError(f"{method}: bot token not recognised ({description})")
        if code == 400 and missing_is_not_found:
            raise NotFoundError(f"{method}: {description}")
        if code >= 500:
            raise TransportError(f"{method}: server error {code} {description}")
        raise _PermanentTransportError(f"{method}: request rejected ({code} {description})")

    def _fetch_file(self, url: str, ref: BlobReference, ctx: OperationContext) -> bytes:
        try:
            resp = self.session.get(url, timeout=ctx.timeout_for(self.request_timeout))
        except requests.exceptions.RequestException as e:
            raise TransportError(f"download failed: {self._redact(str(e))}") from None
        if resp.status_code == 404:
            raise NotFoundError(f"Blob not found: {ref.file_id}")
        if resp.status_code in (401, 403):
            raise AuthError(f"download: credentials rejected ({resp.status_code})")
        if resp.status_code == 429:
            raise RateLimitedError("download throttled")
        if resp.status_code >= 500:
            raise TransportError(f"download: server error {resp.status_code}")
        if resp.status_code != 200:
            raise _PermanentTransportError(f"download: unexpected status {resp.status_code}")
        return resp.content

    def _merge_sent(self, scanned: List[MessageDescriptor]) -> List[MessageDescriptor]:
        """Merge own sent documents into scanned ones, ordered by message id."""
        if not self._sent:
            return scanned
        seen = {d.message_id for d in scanned}
        merged = scanned + [d for d in list(self._sent) if d.message_id not in seen]
        if any(d.message_id is None for d in merged):
            return merged
        return sorted(merged, key=lambda d: d.message_id)

    def _is_our_chat(self, message: Dict[str, Any]) -> bool:
        chat = message.get("chat")
        if not chat:
            return True
        if str(chat.get("id")) == self.chat_id:
            return True
        username = chat.get("username")
        return bool(username) and f"@{username}" == self.chat_id

    @staticmethod
    def _descriptor_from_message(message: Optional[Dict[str, Any]]) -> Optional[MessageDescriptor]:
        document = (message or {}).get("document")
        if not document or not document.get("file_id"):
            return None
        return MessageDescriptor(
            name=document.get("file_name", ""),
            ref=BlobReference(file_id=document["file_id"], message_id=message.get("message_id")),
        )

    def _redact(self, text: str) -> str:
        return text.replace(self.bot_token, "<token>")
