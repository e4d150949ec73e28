from peewee import Model, SqliteDatabase, TextField, IntegerField, BooleanField


class Subscription(Model):
    topic = TextField(index=True)
    mode = TextField()                    # 'subscribe' or 'unsubscribe'
    hub = TextField(null=True)
    pending = BooleanField(default=True)
    lease_seconds = IntegerField(null=True)
    secret = TextField(null=True)
    verify_token = TextField()
    started = IntegerField()              # UNIX timestamp

    def lease_expired(self, now):
        return bool(self.lease_seconds) and self.started + self.lease_seconds <= now


class ContentEntry(Model):
    author = TextField(default="")
    guid = TextField(index=True)
    title = TextField(default="")
    updated = IntegerField(index=True)    # UNIX timestamp
    content = TextField(default="")
    link = TextField(default="")
    topic = TextField(default="")         # empty for internal entries
    internal = BooleanField(default=False)


MODELS = (Subscription, ContentEntry)


def open_database(path):
    """Open (or create) the SQLite store at ``path`` and bind the models to it."""
    db = SqliteDatabase(path)
    db.bind(MODELS)
    db.connect(reuse_if_open=True)
    db.create_tables(MODELS)
    return db
