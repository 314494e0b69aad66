"""
Tidepool API client: sign-in, viewable user ids, profile and notes.

Every operation follows the same path: build URL and headers, submit, decode
the response with the endpoint's date format, upsert into the store within a
single transaction, then call `callback(result, error)` exactly once. A
network-level error skips decode/persist and goes straight to the callback.
"""
from __future__ import annotations
import base64
import logging
from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote_plus

import httpx

from urchin.config import DEFAULT_SERVER, MAX_CONCURRENT_REQUESTS, REQUEST_TIMEOUT_S
from urchin.db import EntityStore
from urchin.errors import APIError, MalformedURLError, NotFoundPreconditionError
from urchin.models import Note, Profile, User
from urchin.services import codec
from urchin.services.codec import DEFAULT_DATE_FORMAT, MESSAGE_DATE_FORMAT
from urchin.services.request_pipeline import Callback, RequestHandle, RequestPipeline, deliver
from urchin.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    """Validate a value used as a single URL path segment."""
    if not value or any(c in value for c in "/?#%") or not value.isprintable() or " " in value:
        raise MalformedURLError(f"invalid path segment: {value!r}")
    return value


class APIClient:
    def __init__(
        self,
        server: str = DEFAULT_SERVER,
        store: Optional[EntityStore] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_concurrency: int = MAX_CONCURRENT_REQUESTS,
        timeout: float = REQUEST_TIMEOUT_S,
    ):
        self.store = store or EntityStore()
        self.sessions = SessionManager(self.store)
        self.pipeline = RequestPipeline(
            server,
            headers_provider=self.sessions.headers,
            transport=transport,
            max_concurrency=max_concurrency,
            timeout=timeout,
        )

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.pipeline.aclose()
        await self.store.dispose()

    def set_server(self, server: str) -> bool:
        return self.pipeline.set_server(server)

    async def get_user(self) -> Optional[User]:
        """The signed-in user, or None if not authenticated."""
        return await self.sessions.current_user()

    async def get_session_id(self) -> Optional[str]:
        return await self.sessions.current_session_token()

    def cancel_all(self, tag: Any = None) -> int:
        return self.pipeline.cancel_all(tag)

    # ------------------------------------------------------------------
    # sign-in
    # ------------------------------------------------------------------
    async def sign_in(
        self, username: str, password: str, callback: Callback, *, tag: Any = None
    ) -> Optional[RequestHandle]:
        """
        POST /auth/login with Basic auth.

        Any existing Session is deleted before the request goes out. The token
        comes only from the `x-tidepool-session-token` response header; a 2xx
        response without it is reported as AuthenticationError. If another
        sign-in replaces the Session before this one links its user, this one
        fails with AuthenticationError as well.
        """
        auth = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        headers = {"Authorization": f"Basic {auth}"}
        handle: Optional[RequestHandle] = None

        async def on_success(body: str, response_headers) -> None:
            try:
                token = await self.sessions.establish(response_headers)
                user = codec.decode(body, User, DEFAULT_DATE_FORMAT)
                stored = await self.sessions.attach_user(user, token)
            except APIError as e:
                logger.warning("Login failure: %s", e)
                await deliver(handle, callback, None, e)
                return
            logger.info("Login success: userid=%s", stored.userid)
            await deliver(handle, callback, stored, None)

        async def on_error(error: APIError) -> None:
            logger.info("Login failure: %s", error)
            await deliver(handle, callback, None, error)

        try:
            await self.sessions.begin_sign_in()
            handle = await self.pipeline.submit("POST", "/auth/login", headers, None, on_success, on_error, tag=tag)
        except APIError as e:
            await deliver(None, callback, None, e)
            return None
        return handle

    # ------------------------------------------------------------------
    # viewable user ids
    # ------------------------------------------------------------------
    async def get_viewable_user_ids(self, callback: Callback, *, tag: Any = None) -> Optional[RequestHandle]:
        """GET /access/groups/{userid}. Response keys are the viewable ids."""
        try:
            user = await self.sessions.current_user()
        except APIError as e:
            await deliver(None, callback, None, e)
            return None
        if user is None:
            await deliver(None, callback, None, NotFoundPreconditionError("not signed in: no current user"))
            return None
        userid = user.userid
        handle: Optional[RequestHandle] = None

        async def on_success(body: str, response_headers) -> None:
            try:
                ids = codec.decode_keys(body)
                async with self.store.transaction() as tx:
                    owner = await tx.find_by_id(User, userid)
                    if owner is None:
                        raise NotFoundPreconditionError(f"user {userid} no longer in store")
                    # 이전 목록은 통째로 교체
                    owner.viewable_user_ids = list(ids)
            except APIError as e:
                await deliver(handle, callback, None, e)
                return
            await deliver(handle, callback, ids, None)

        async def on_error(error: APIError) -> None:
            await deliver(handle, callback, None, error)

        try:
            path = f"/access/groups/{_segment(userid)}"
            handle = await self.pipeline.submit("GET", path, None, None, on_success, on_error, tag=tag)
        except APIError as e:
            await deliver(None, callback, None, e)
            return None
        return handle

    # ------------------------------------------------------------------
    # profile
    # ------------------------------------------------------------------
    async def get_profile(self, userid: str, callback: Callback, *, tag: Any = None) -> Optional[RequestHandle]:
        """
        GET /metadata/{userid}/profile. Upserts the Profile and its owning User.

        `userid` is used as one path segment as is, never percent-encoded: an id
        containing `/ ? # %`, whitespace or a non-printable character is
        reported as MalformedURLError and nothing is sent.
        """
        handle: Optional[RequestHandle] = None

        async def on_success(body: str, response_headers) -> None:
            try:
                profile = codec.decode(body, Profile, DEFAULT_DATE_FORMAT)
                profile.stamp_owner(userid)
                async with self.store.transaction() as tx:
                    stored = await tx.upsert(profile)
                    # 이 profile 을 가진 user 생성 또는 갱신
                    user = await tx.find_by_id(User, userid)
                    if user is None:
                        user = await tx.upsert(User(userid=userid))
                    user.profile_id = stored.userid
            except APIError as e:
                logger.error("Profile error: %s", e)
                await deliver(handle, callback, None, e)
                return
            await deliver(handle, callback, stored, None)

        async def on_error(error: APIError) -> None:
            logger.error("Profile error: %s", error)
            await deliver(handle, callback, None, error)

        try:
            path = f"/metadata/{_segment(userid)}/profile"
            handle = await self.pipeline.submit("GET", path, None, None, on_success, on_error, tag=tag)
        except APIError as e:
            await deliver(None, callback, None, e)
            return None
        return handle

    # ------------------------------------------------------------------
    # notes
    # ------------------------------------------------------------------
    async def get_notes(
        self,
        userid: str,
        from_date: datetime,
        to_date: datetime,
        callback: Callback,
        *,
        tag: Any = None,
    ) -> Optional[RequestHandle]:
        """
        GET /message/notes/{userid}?starttime=..&endtime=..

        All messages are decoded before anything is written; one bad message
        fails the whole fetch and nothing is committed. `userid` follows the
        same path-segment rule as get_profile: ids that would need
        percent-encoding are rejected with MalformedURLError.
        """
        handle: Optional[RequestHandle] = None

        async def on_success(body: str, response_headers) -> None:
            try:
                notes: List[Note] = []
                for raw in codec.decode_messages(body):
                    note = codec.decode(raw, Note, MESSAGE_DATE_FORMAT)
                    note.userid = userid
                    notes.append(note)

                async with self.store.transaction() as tx:
                    stored = [await tx.upsert(note) for note in notes]
            except APIError as e:
                logger.warning("notes for %s not stored: %s", userid, e)
                await deliver(handle, callback, None, e)
                return
            await deliver(handle, callback, stored, None)

        async def on_error(error: APIError) -> None:
            await deliver(handle, callback, None, error)

        try:
            path = (
                f"/message/notes/{_segment(userid)}"
                f"?starttime={quote_plus(DEFAULT_DATE_FORMAT.format(from_date))}"
                f"&endtime={quote_plus(DEFAULT_DATE_FORMAT.format(to_date))}"
            )
            handle = await self.pipeline.submit("GET", path, None, None, on_success, on_error, tag=tag)
        except APIError as e:
            await deliver(None, callback, None, e)
            return None
        return handle
