class HubsubError(Exception):
    pass


class MalformedEntry(HubsubError):
    """A feed entry has no derivable topic and can't be stored."""

    def __init__(self, message, guid=""):
        super().__init__(message)
        self.guid = guid


class UnsupportedFeed(HubsubError):
    pass


class SignatureMismatch(HubsubError):
    pass


class PersistenceFailure(HubsubError):
    pass
