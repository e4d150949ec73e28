import threading
import time
from contextlib import ExitStack

from peewee import PeeweeException

from hubsub.errors import PersistenceFailure
from hubsub.logger import logger
from hubsub.models import ContentEntry
from hubsub.sanitizer import sanitize

PLACEHOLDER_GUID = "urn:hubsub:pending"
LOCK_STRIPES = 64


class ContentStore:
    def __init__(self, db, entry_url="https://localhost/entry/{id}"):
        self.db = db
        self.entry_url = entry_url
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _stripe(self, topic):
        return hash(topic) % len(self._locks)

    def upsert(self, entries):
        """Store a batch of normalized entries in one transaction.

        Each entry updates the external row with the same (topic, guid) or is
        inserted when there is none. Any failure rolls the whole batch back and
        raises PersistenceFailure.
        """
        entries = list(entries)
        if not entries:
            return 0

        with ExitStack() as stack:
            # try-update/fallback-insert must not interleave for the same topic
            for index in sorted({self._stripe(e.topic) for e in entries}):
                stack.enter_context(self._locks[index])
            try:
                with self.db.atomic():
                    for entry in entries:
                        self._upsert_one(entry)
            except PeeweeException as e:
                logger.error("Storing %d entries failed, batch rolled back: %s", len(entries), e, exc_info=True)
                raise PersistenceFailure(str(e)) from e

        logger.info("Stored %d entries", len(entries))
        return len(entries)

    def _upsert_one(self, entry):
        fields = {
            ContentEntry.author: entry.author,
            ContentEntry.title: entry.title,
            ContentEntry.content: entry.content,
            ContentEntry.link: entry.link,
            ContentEntry.updated: entry.updated,
        }
        updated = (
            ContentEntry
            .update(fields)
            .where(
                (ContentEntry.guid == entry.guid)
                & (ContentEntry.topic == entry.topic)
                & (ContentEntry.internal == False)  # noqa: E712
            )
            .execute()
        )
        if not updated:
            ContentEntry.insert(
                {**fields, ContentEntry.guid: entry.guid, ContentEntry.topic: entry.topic, ContentEntry.internal: False}
            ).execute()

    def publish(self, title, content, author="", updated=None):
        """Store a self-authored entry.

        Its permanent guid and link depend on the row id, so the row is
        inserted with a placeholder and patched once the id is known.
        """
        try:
            with self.db.atomic():
                entry = ContentEntry.create(
                    author=author or "",
                    guid=PLACEHOLDER_GUID,
                    title=sanitize(title),
                    content=sanitize(content),
                    link="",
                    topic="",
                    updated=int(updated if updated is not None else time.time()),
                    internal=True,
                )
                entry.guid = entry.link = self.entry_url.format(id=entry.id)
                entry.save()
        except PeeweeException as e:
            logger.error("Publishing entry failed: %s", e, exc_info=True)
            raise PersistenceFailure(str(e)) from e

        logger.info("Published entry %s", entry.guid)
        return entry

    def get(self, entry_id):
        return ContentEntry.get_or_none(ContentEntry.id == entry_id)

    def find(self, topic, guid):
        return ContentEntry.get_or_none(
            (ContentEntry.topic == topic) & (ContentEntry.guid == guid) & (ContentEntry.internal == False)  # noqa: E712
        )

    def recent(self, limit=20, internal=None):
        query = ContentEntry.select().order_by(ContentEntry.updated.desc(), ContentEntry.id.desc())
        if internal is not None:
            query = query.where(ContentEntry.internal == internal)
        return list(query.limit(limit))
