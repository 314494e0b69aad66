from __future__ import annotations
from typing import Optional


class APIError(RuntimeError):
    pass


class TransportError(APIError):
    """네트워크/연결 실패. 원본 예외는 cause 로 그대로 전달."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ResponseStatusError(TransportError):
    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"request failed {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


class MalformedURLError(APIError):
    pass


class AuthenticationError(APIError):
    pass


class DecodeError(APIError):
    """JSON / date parse failure. `fragment` holds the offending payload."""

    def __init__(self, message: str, fragment: str | bytes | None = None):
        if isinstance(fragment, bytes):
            fragment = fragment.decode("utf-8", errors="replace")
        super().__init__(message)
        self.fragment = fragment

    def __str__(self) -> str:
        base = super().__str__()
        if self.fragment is None:
            return base
        return f"{base} (payload: {self.fragment[:200]!r})"


class NotFoundPreconditionError(APIError):
    pass


class StoreError(APIError):
    pass
