"""Domain models for marketplace API calls.

Includes the credential pair, the per-call signed request, the raw transport
response and the uniform ApiResponse envelope handed back to every caller.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from dataclasses import dataclass, field

from .common import HttpMethod, ApiPath, Timestamp, Signature, ResponseCode

SUCCESS_CODE = ResponseCode("200")


# --- Credentials ---

@dataclass(frozen=True)
class Credentials:
    """Access/secret key pair used to sign outbound requests."""
    access_key: str = ""
    secret_key: str = field(default="", repr=False)

    def is_configured(self) -> bool:
        return bool(self.access_key) and bool(self.secret_key)


# --- Signing ---

@dataclass(frozen=True)
class SignedRequest:
    """A request shape together with its signature and authorization headers.

    Created per call and discarded afterwards.
    """
    method: HttpMethod
    path: ApiPath
    timestamp: Timestamp
    sorted_query: Tuple[Tuple[str, Any], ...]
    signature: Signature
    headers: Dict[str, str]


# --- Transport ---

@dataclass(frozen=True)
class TransportResponse:
    """Raw HTTP response returned by an HttpTransport."""
    status: int
    headers: Mapping[str, str]
    body: str = ""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


# --- Error taxonomy ---

class ErrorKind(str, Enum):
    """Closed set of failure outcomes a call can end in."""
    CONFIGURATION = "configuration"  # credentials missing
    RATE_LIMITED = "rate_limited"    # local admission window exhausted
    TRANSPORT = "transport"          # connect / DNS / timeout
    SERVER = "server"                # 5xx
    CLIENT = "client"                # 4xx other than the pre-checked cases
    SIGNATURE = "signature"          # response signature check failed
    TIMEOUT = "timeout"              # overall operation deadline exceeded


RETRYABLE_KINDS = frozenset({ErrorKind.TRANSPORT, ErrorKind.SERVER})


def is_retryable(kind: Optional[ErrorKind]) -> bool:
    """Retry decision as a pure function of the failure kind."""
    return kind in RETRYABLE_KINDS


# --- Response envelope ---

@dataclass(frozen=True)
class ApiResponse:
    """Uniform success/error envelope returned by the request executor.

    Callers branch on `success` and `code`; no exception crosses this boundary.
    `raw` carries the parsed (or, when unparseable, textual) body for
    downstream domain-specific parsing.
    """
    success: bool
    code: ResponseCode
    message: Optional[str] = None
    data: Any = None
    raw: Any = None
    error_kind: Optional[ErrorKind] = None

    def __post_init__(self):
        if self.success and self.error_kind is not None:
            raise ValueError("A successful ApiResponse cannot carry an error kind.")

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None, raw: Any = None) -> "ApiResponse":
        return cls(success=True, code=SUCCESS_CODE, message=message, data=data, raw=raw)

    @classmethod
    def error(
        cls,
        code: str,
        message: str,
        raw: Any = None,
        kind: ErrorKind = ErrorKind.CLIENT,
    ) -> "ApiResponse":
        return cls(success=False, code=ResponseCode(str(code)), message=message, raw=raw, error_kind=kind)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.error_kind)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view (without the raw body)."""
        return {
            "success": self.success,
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }
