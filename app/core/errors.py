"""
Domain errors for photo admission and event lifecycle operations.

Every rejection reason is its own exception type with a stable ``code`` so the
API layer (and any other caller) can tell them apart without parsing messages.
Operator remediation text is not carried here; callers get a code and a
short, user-presentable message.
"""

from typing import Optional


class AdmissionError(Exception):
    """Base class for upload admission outcomes other than success"""

    code = "admission_error"
    retryable = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message())

    @property
    def message(self) -> str:
        return str(self)

    def default_message(self) -> str:
        return "The upload could not be admitted."


class EventNotFound(AdmissionError):
    code = "event_not_found"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event '{event_id}' not found.")


class MissingGuestIdentity(AdmissionError):
    code = "missing_guest_identity"

    def default_message(self) -> str:
        return "Guest identifier is missing."


class InvalidPayload(AdmissionError):
    code = "invalid_payload"

    def default_message(self) -> str:
        return "Invalid photo data format."


class EventFull(AdmissionError):
    code = "event_full"

    def __init__(self, max_guests: int):
        self.max_guests = max_guests
        super().__init__(f"This event is full: all {max_guests} guest places are taken.")


class UploadLimitReached(AdmissionError):
    code = "upload_limit_reached"

    def __init__(self, upload_limit: int):
        self.upload_limit = upload_limit
        super().__init__(f"You have reached the upload limit of {upload_limit} photos for this event.")


class StorageError(AdmissionError):
    """Blob store or metadata store failure.

    ``reason`` is one of the ``REASON_*`` constants. Presentation and alerting
    layers own remediation guidance for each reason.
    """

    code = "storage_error"
    retryable = True

    REASON_PERMISSION_DENIED = "permission_denied"
    REASON_TOKEN_REFRESH = "token_refresh_failed"
    REASON_BUCKET_NOT_FOUND = "bucket_not_found"
    REASON_UNAVAILABLE = "unavailable"

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Photo storage is unavailable ({reason}).")

    @classmethod
    def from_exception(cls, exc: Exception) -> "StorageError":
        """Classify an arbitrary storage/client exception into a reason code"""
        text = str(exc).lower()
        status = getattr(exc, "code", None)
        if status == 403 or isinstance(exc, PermissionError) or "permission denied" in text \
                or "does not have storage.objects" in text:
            reason = cls.REASON_PERMISSION_DENIED
        elif "could not refresh access token" in text:
            reason = cls.REASON_TOKEN_REFRESH
        elif "bucket does not exist" in text or "bucket not found" in text:
            reason = cls.REASON_BUCKET_NOT_FOUND
        else:
            reason = cls.REASON_UNAVAILABLE
        return cls(reason)


class LifecycleError(Exception):
    """Base class for event creation/deletion rejections"""

    code = "lifecycle_error"


class OwnerCreationRequiresPassword(LifecycleError):
    code = "owner_creation_requires_password"

    def __init__(self, email: str):
        self.email = email
        super().__init__("The client does not exist, and no password was provided to create them.")


class OwnerAlreadyExists(LifecycleError):
    code = "owner_already_exists"

    def __init__(self, email: str):
        self.email = email
        super().__init__("A user with this client email already exists.")


class InvalidPartner(LifecycleError):
    code = "invalid_partner"

    def __init__(self, partner_id: str):
        self.partner_id = partner_id
        super().__init__("Invalid Partner ID. This action is not authorized.")


class EventAlreadyExists(LifecycleError):
    code = "event_already_exists"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"An event with ID '{event_id}' already exists.")
