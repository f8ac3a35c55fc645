class GymChatError(Exception):
    """Base class for messaging failures."""


class BackendError(GymChatError):
    """The backend (database, realtime bus, storage) could not be reached or failed."""


class PermissionDenied(GymChatError):
    pass


class MessageNotFound(GymChatError):
    pass


class MessageNotEditable(GymChatError):
    """Edit attempted on someone else's message or on a message deleted for everyone."""


class AttachmentUploadError(GymChatError):
    pass


class SendFailed(GymChatError):
    pass


class MutationFailed(GymChatError):
    pass


class MalformedResponse(GymChatError):
    """A backend row or provider payload did not match the expected shape."""


class AnalysisUnavailable(GymChatError):
    pass
