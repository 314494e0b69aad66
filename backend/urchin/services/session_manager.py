from __future__ import annotations
import logging
from typing import Dict, Mapping, Optional

from urchin.config import SESSION_TOKEN_HEADER
from urchin.db import EntityStore
from urchin.errors import AuthenticationError
from urchin.models import Session, User, SESSION_KEY

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Owns the single Session record.

    Unauthenticated -> Authenticated when a login response carries the token
    header; back to Unauthenticated the moment a new sign-in begins. There is
    no expiry handling: a stale token shows up as errors on later requests.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    async def current_session(self) -> Optional[Session]:
        return await self.store.find_by_id(Session, SESSION_KEY)

    async def current_user(self) -> Optional[User]:
        async with self.store.reader() as tx:
            session = await tx.find_by_id(Session, SESSION_KEY)
            if session is None or session.user_id is None:
                return None
            return await tx.find_by_id(User, session.user_id)

    async def current_session_token(self) -> Optional[str]:
        session = await self.current_session()
        return session.session_id if session is not None else None

    async def headers(self) -> Dict[str, str]:
        """Headers provider for the request pipeline."""
        token = await self.current_session_token()
        if token is None:
            return {}
        return {SESSION_TOKEN_HEADER: token}

    async def begin_sign_in(self) -> int:
        # 기존 세션은 더 이상 유효하지 않음
        async with self.store.transaction() as tx:
            removed = await tx.delete_all(Session)
        if removed:
            logger.info("dropped %d previous session(s)", removed)
        return removed

    async def establish(self, response_headers: Mapping[str, str]) -> str:
        """Create the one Session from a login response's token header. Returns the stored token."""
        token = response_headers.get(SESSION_TOKEN_HEADER)
        if not token:
            raise AuthenticationError("No session ID returned in headers")

        async with self.store.transaction() as tx:
            # 겹친 로그인 요청이 있어도 Session 은 하나만 남는다
            await tx.delete_all(Session)
            await tx.upsert(Session(key=SESSION_KEY, session_id=token))
        return token

    async def attach_user(self, user: User, token: str) -> User:
        """
        Persist the signed-in user and link it to the Session holding `token`.

        A later sign-in may have replaced the Session in between; the user is
        then not attached to someone else's token.
        """
        async with self.store.transaction() as tx:
            session = await tx.find_by_id(Session, SESSION_KEY)
            if session is None or session.session_id != token:
                raise AuthenticationError("session was replaced before sign-in completed")
            stored = await tx.upsert(user)
            session.user_id = stored.userid
        return stored
