"""Independent verification of recognized TUIDs against the transaction service."""

from dataclasses import dataclass
from typing import Optional
from core.config import settings
from core.logging import log
from core.remote import RemoteClient

VERIFIER_NAME = "tuid_verifier"


@dataclass
class VerificationResult:
    """Verifier answer for one candidate.

    Attributes:
        ok: The verifier accepted the query
        matched: A transaction with this TUID exists
        message: Human-readable outcome
    """
    ok: bool
    matched: bool
    message: str

    @property
    def confirmed(self) -> bool:
        return self.ok and self.matched


class TuidVerifier:
    """Asks the remote "compare TUID" service whether a candidate exists."""

    def __init__(self, url: Optional[str] = None, client: Optional[RemoteClient] = None):
        self.url = url if url is not None else settings.VERIFY_TUID_URL
        self.client = client or RemoteClient(VERIFIER_NAME, timeout=settings.REMOTE_TIMEOUT_SECONDS)

    def verify(self, candidate: str) -> VerificationResult:
        """Check a candidate TUID.

        Args:
            candidate: Extracted identifier

        Returns:
            VerificationResult: Rejection and no-match are results, not errors

        Raises:
            CollaboratorFailure: If the verifier cannot be reached or answers
                with something other than a JSON object
        """
        body = self.client.post_json(self.url, {"DEBUG": "Y", "PAYLOAD": {"TUID": candidate}})

        if body.get("validity") != "true":
            log.info(f"TUID verification rejected for {candidate}")
            return VerificationResult(ok=False, matched=False, message="TUID verification failed")

        if not body.get("data"):
            log.info(f"No transaction matches TUID {candidate}")
            return VerificationResult(ok=True, matched=False, message="No matching TUID found")

        log.info(f"TUID {candidate} verified")
        return VerificationResult(ok=True, matched=True, message="TUID verified")
