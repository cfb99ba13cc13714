"""Error taxonomy shared by adapters, the controller and the REST backend."""


class BeingBetterError(Exception):
    """Base class for every error raised by this package."""


class SetupError(BeingBetterError):
    """Required configuration is missing or the backend cannot be set up."""


class MissingGoogleClientIdError(SetupError):
    def __init__(self):
        super().__init__("Missing GOOGLE_CLIENT_ID")


class AuthError(BeingBetterError):
    """Sign-in was rejected, cancelled, or the provider failed."""


class SignInInProgressError(AuthError):
    def __init__(self):
        super().__init__("Sign in already in progress")


class StorageError(BeingBetterError):
    """A read or write against the storage backend failed."""


class NotConnectedError(StorageError):
    def __init__(self, message: str = "Sign in required"):
        super().__init__(message)


class ValidationError(BeingBetterError, ValueError):
    """An entry violates a domain constraint and must not be persisted."""


class PushError(BeingBetterError):
    """Registering a push subscription or syncing its settings failed."""
