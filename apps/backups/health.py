"""
Object store connection health prober.

Exercises the store with a one-item listing, retrying with exponential
backoff, and classifies each failure into an actionable diagnosis. S3-compatible
stores frequently report bad credentials as generic TLS handshake failures,
which operators tend to misread as transport or certificate problems; the
diagnosis table points them at the credentials instead.

Classification looks at structured S3 error codes first, then exception
types, and only falls back to message substrings when neither matched.
"""

import logging
import time
from typing import Callable, List, Optional

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

CREDENTIAL_HANDSHAKE = "credential_handshake"
INVALID_CREDENTIALS = "invalid_credentials"
MISSING_BUCKET = "missing_bucket"
NETWORK_UNREACHABLE = "network_unreachable"
UNKNOWN = "unknown"

DEFAULT_DIAGNOSES = [
    {
        "category": INVALID_CREDENTIALS,
        "codes": [
            "InvalidAccessKeyId",
            "SignatureDoesNotMatch",
            "AccessDenied",
            "InvalidToken",
            "Unauthorized",
            "403",
        ],
        "exceptions": ["NoCredentialsError", "PartialCredentialsError"],
        "patterns": [
            "invalid access key",
            "invalidaccesskeyid",
            "signature does not match",
            "signaturedoesnotmatch",
            "access denied",
            "unauthorized",
        ],
        "remediation": (
            "The store rejected the credentials. Check STORE_ACCESS_KEY_ID and "
            "STORE_SECRET_ACCESS_KEY, and that the token has read/write access to the bucket."
        ),
    },
    {
        "category": MISSING_BUCKET,
        "codes": ["NoSuchBucket"],
        "exceptions": [],
        "patterns": ["nosuchbucket", "bucket does not exist", "specified bucket does not exist"],
        "remediation": (
            "The bucket does not exist. Check STORE_BUCKET_NAME or create the bucket "
            "in the storage provider's dashboard."
        ),
    },
    {
        "category": CREDENTIAL_HANDSHAKE,
        "codes": [],
        "exceptions": ["SSLError"],
        "patterns": ["handshake", "ssl", "tls", "eproto", "wrong version number", "certificate"],
        "remediation": (
            "TLS handshake failed. With S3-compatible stores this usually means invalid "
            "or truncated credentials rather than a transport problem: re-check "
            "STORE_ACCESS_KEY_ID and STORE_SECRET_ACCESS_KEY before changing SSL settings."
        ),
    },
    {
        "category": NETWORK_UNREACHABLE,
        "codes": [],
        "exceptions": [
            "EndpointConnectionError",
            "ConnectTimeoutError",
            "ReadTimeoutError",
            "ConnectionClosedError",
            "TimeoutError",
            "ConnectionRefusedError",
        ],
        "patterns": [
            "could not connect",
            "connection refused",
            "econnrefused",
            "enotfound",
            "getaddrinfo",
            "name or service not known",
            "network is unreachable",
            "timed out",
            "timeout",
        ],
        "remediation": (
            "The endpoint could not be reached. Check STORE_ENDPOINT, DNS resolution "
            "and outbound network access from this host."
        ),
    },
]

UNKNOWN_DIAGNOSIS = {
    "category": UNKNOWN,
    "remediation": "Unrecognised failure. Inspect the error message and the store's status page.",
}


def _error_chain(error: BaseException) -> List[BaseException]:
    chain = []
    current = error
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def _error_codes(chain: List[BaseException]) -> List[str]:
    codes = []
    for item in chain:
        code = getattr(item, "code", None)
        if isinstance(code, str) and code:
            codes.append(code)
        if isinstance(item, ClientError):
            client_code = item.response.get("Error", {}).get("Code")
            if client_code:
                codes.append(str(client_code))
    return codes


def classify_error(error: BaseException, diagnoses: Optional[list] = None) -> dict:
    """
    Classify a store failure into a diagnosis.

    Args:
        error: The exception raised by the store adapter
        diagnoses: Diagnosis rules (defaults to DEFAULT_DIAGNOSES)

    Returns:
        Dictionary with category, remediation and error message
    """
    rules = diagnoses if diagnoses is not None else DEFAULT_DIAGNOSES
    chain = _error_chain(error)
    codes = _error_codes(chain)
    type_names = {cls.__name__ for item in chain for cls in type(item).__mro__}
    message = " ".join(str(item) for item in chain).lower()

    matched = None
    for rule in rules:
        if any(code in rule.get("codes", []) for code in codes):
            matched = rule
            break
    if matched is None:
        for rule in rules:
            if type_names.intersection(rule.get("exceptions", [])):
                matched = rule
                break
    if matched is None:
        for rule in rules:
            if any(pattern.lower() in message for pattern in rule.get("patterns", [])):
                matched = rule
                break
    if matched is None:
        matched = UNKNOWN_DIAGNOSIS

    return {
        "category": matched["category"],
        "remediation": matched["remediation"],
        "error": str(error),
    }


class ConnectionHealthProber:
    """Tests store connectivity with bounded retries and exponential backoff."""

    def __init__(
        self,
        store,
        prefix: str = "",
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        diagnoses: Optional[list] = None,
    ):
        self.store = store
        self.prefix = prefix
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.sleep = sleep
        self.diagnoses = list(diagnoses or []) + DEFAULT_DIAGNOSES
        self.last_diagnosis = None

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.base_delay * 2 ** (attempt - 1)

    def probe(self) -> bool:
        """
        Run the connection test.

        Returns:
            True on the first successful attempt, False once every attempt failed.
            Never raises.
        """
        self.last_diagnosis = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.store.list(self.prefix, 1)
            except Exception as e:
                diagnosis = classify_error(e, self.diagnoses)
                diagnosis["attempts"] = attempt
                self.last_diagnosis = diagnosis

                logger.warning(
                    f"Store connection test attempt {attempt}/{self.max_attempts} failed "
                    f"({diagnosis['category']}): {e}"
                )

                if attempt < self.max_attempts:
                    self.sleep(self.backoff_delay(attempt))
                continue

            if attempt > 1:
                logger.info(f"Store connection test successful after {attempt} attempts")
            else:
                logger.info("Store connection test successful")
            return True

        logger.error(
            f"Store connection test failed after {self.max_attempts} attempts: "
            f"{self.last_diagnosis['category']}. {self.last_diagnosis['remediation']}"
        )
        return False
