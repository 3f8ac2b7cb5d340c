"""Exceptions raised while resolving and publishing tracked extensions."""


class OvsxSyncError(Exception):
    """Base exception for ovsx-sync failures."""


class MissingRepositoryError(OvsxSyncError):
    """Package has no repository configured."""


class UnresolvableError(OvsxSyncError):
    """No publishable source could be found for a package."""


class NamespaceCreateError(OvsxSyncError):
    """Namespace creation on the registry failed.

    Not fatal: the namespace usually exists already.
    """


class AlreadyPublishedError(OvsxSyncError):
    """The registry already has the target version."""


class PublishTimeoutError(OvsxSyncError):
    """A publish attempt ran past its deadline and was killed."""


class TransientNetworkError(OvsxSyncError):
    """A remote call kept failing after all retries."""


class PublishError(OvsxSyncError):
    """A publish step failed."""


class StoreError(OvsxSyncError):
    """The tracked-package store could not be read or written."""


class UpgradeError(OvsxSyncError):
    """Rewriting the tracked-package store failed and was rolled back."""
