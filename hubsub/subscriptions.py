import time
from dataclasses import dataclass
from typing import Optional

from peewee import PeeweeException

from hubsub.logger import logger
from hubsub.models import Subscription

SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
MODES = (SUBSCRIBE, UNSUBSCRIBE)


@dataclass(frozen=True)
class VerificationRequest:
    mode: str
    topic: str
    verify_token: str
    challenge: str = ""
    lease_seconds: Optional[int] = None


@dataclass(frozen=True)
class Acceptance:
    topics: frozenset = frozenset()
    secret: Optional[str] = None


class SubscriptionStore:
    def __init__(self, db):
        self.db = db

    def store_pending(self, topic, mode, verify_token, hub=None, lease_seconds=None, secret=None, now=None):
        """Record a subscribe/unsubscribe request that is about to be sent to ``hub``.

        Any earlier row for the topic is replaced.
        """
        if mode not in MODES:
            raise ValueError(f"unknown subscription mode {mode!r}")
        if lease_seconds is not None and lease_seconds <= 0:
            raise ValueError("lease_seconds must be positive")

        with self.db.atomic():
            Subscription.delete().where(Subscription.topic == topic).execute()
            return Subscription.create(
                topic=topic,
                mode=mode,
                hub=hub,
                pending=True,
                lease_seconds=lease_seconds,
                secret=secret,
                verify_token=verify_token,
                started=int(now if now is not None else time.time()),
            )

    def get(self, topic):
        return Subscription.get_or_none(Subscription.topic == topic)

    def find(self, topic, mode, verify_token):
        return Subscription.get_or_none(
            (Subscription.topic == topic)
            & (Subscription.mode == mode)
            & (Subscription.verify_token == verify_token)
        )

    def active(self, topics, now=None):
        """Verified subscribe rows among ``topics`` whose lease is still running."""
        topics = list(topics)
        if not topics:
            return []
        now = int(now if now is not None else time.time())
        return list(
            Subscription
            .select()
            .where(
                Subscription.topic.in_(topics)
                & (Subscription.mode == SUBSCRIBE)
                & (Subscription.pending == False)  # noqa: E712
                & (
                    Subscription.lease_seconds.is_null()
                    | (Subscription.started + Subscription.lease_seconds > now)
                )
            )
            .order_by(Subscription.id)
        )


class SubscriptionAcceptor:
    def __init__(self, store: SubscriptionStore):
        self.store = store

    def accept(self, candidate_topics, now=None) -> Acceptance:
        """Decide which pushed topics are trusted, and under which secret.

        Topics subscribed without a secret are always accepted. Secret-bearing
        topics must agree with the first secret seen; a hub may bundle topics
        from several bulk subscriptions, so a disagreeing topic is dropped on
        its own rather than failing the whole push.
        """
        accepted = set()
        secret = None
        for sub in self.store.active(set(candidate_topics), now=now):
            if not sub.secret:
                accepted.add(sub.topic)
            elif secret is None or sub.secret == secret:
                secret = sub.secret
                accepted.add(sub.topic)
            else:
                logger.info("Topic %s subscribed with a different secret, ignoring it for this push", sub.topic)
        return Acceptance(topics=frozenset(accepted), secret=secret)


class SubscriptionVerifier:
    def __init__(self, store: SubscriptionStore):
        self.store = store

    def verify(self, request: VerificationRequest, now=None) -> bool:
        """Honor a hub's verification challenge if it matches a stored request.

        A lease that already ran out removes the subscription; the challenge
        still counts as verified.
        """
        now = int(now if now is not None else time.time())
        try:
            with self.store.db.atomic():
                sub = self.store.find(request.topic, request.mode, request.verify_token)
                if sub is None:
                    logger.info("No subscription matches %s challenge for %s", request.mode, request.topic)
                    return False

                if sub.lease_expired(now):
                    logger.info("Lease for %s expired before verification, removing it", sub.topic)
                    sub.delete_instance()
                elif sub.pending:
                    sub.pending = False
                    sub.save()
        except PeeweeException as e:
            logger.error("Verification of %s failed: %s", request.topic, e, exc_info=True)
            return False

        logger.info("Verified %s of %s (lease %s)", request.mode, request.topic, request.lease_seconds)
        return True
