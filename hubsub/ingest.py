import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Optional

from hubsub import formats
from hubsub.content import ContentStore
from hubsub.errors import SignatureMismatch
from hubsub.formats import FeedKind
from hubsub.logger import logger
from hubsub.subscriptions import SubscriptionAcceptor

SIGNATURE_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha384": hashlib.sha384,
    "sha512": hashlib.sha512,
}


@dataclass
class Push:
    kind: FeedKind
    document: object
    topics: frozenset = frozenset()
    body: bytes = b""
    signature: Optional[str] = None


@dataclass
class IngestResult:
    topics: frozenset = frozenset()
    secret: Optional[str] = None
    stored: int = 0
    skipped: int = 0
    rejected: list = field(default_factory=list)


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check an ``X-Hub-Signature`` value (``<algo>=<hexdigest>``) against ``body``."""
    if not signature or "=" not in signature:
        return False
    algorithm, _, digest = signature.strip().partition("=")
    hash_func = SIGNATURE_ALGORITHMS.get(algorithm.lower())
    if hash_func is None:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hash_func).hexdigest()
    return hmac.compare_digest(expected, digest.strip().lower())


class IngestionOrchestrator:
    def __init__(self, acceptor: SubscriptionAcceptor, content: ContentStore,
                 fallback_author: str = "", require_signature: bool = True):
        self.acceptor = acceptor
        self.content = content
        self.fallback_author = fallback_author
        self.require_signature = require_signature

    def _check_signature(self, push, secret):
        if push.signature is None and not self.require_signature:
            return
        if not verify_signature(secret, push.body, push.signature):
            raise SignatureMismatch("push signature does not match the subscription secret")

    def ingest(self, push: Push) -> IngestResult:
        """Store the entries of one push that belong to trusted topics.

        Raises SignatureMismatch when the push is not signed with the agreed
        secret and PersistenceFailure when the batch can't be committed.
        """
        acceptance = self.acceptor.accept(push.topics)
        if not acceptance.topics:
            logger.info("Push for %s matches no active subscription", sorted(push.topics))
            return IngestResult()

        if acceptance.secret is not None:
            self._check_signature(push, acceptance.secret)

        normalized = formats.normalize(push.kind, push.document, self.fallback_author)
        for error in normalized.rejected:
            logger.warning("Skipping entry %r: %s", error.guid, error)

        entries = [e for e in normalized.entries if e.topic in acceptance.topics]
        skipped = len(normalized.entries) - len(entries)
        if skipped:
            logger.debug("Skipping %d entries of topics not accepted for this push", skipped)

        stored = self.content.upsert(entries)
        return IngestResult(
            topics=acceptance.topics,
            secret=acceptance.secret,
            stored=stored,
            skipped=skipped,
            rejected=normalized.rejected,
        )
