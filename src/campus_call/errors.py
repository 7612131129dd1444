"""Call error taxonomy.

Collaborator failures are converted into one of these at the session manager
and dispatcher boundary, so callers only ever see a ``CallError``.
"""

from __future__ import annotations


class CallError(Exception):
    code = "call_error"
    default_detail = "The call could not be completed."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotAuthenticated(CallError):
    code = "not_authenticated"
    default_detail = "You must be signed in to make calls."


class InvalidRecipient(CallError):
    code = "invalid_recipient"
    default_detail = "Invalid recipient."


class InvalidRoom(CallError):
    code = "invalid_room"
    default_detail = "Invalid call room."


class SubchannelNotFound(CallError):
    code = "subchannel_not_found"
    default_detail = "Subchannel not found."


class ChannelNotFound(CallError):
    code = "channel_not_found"
    default_detail = "Channel not found."


class DispatchFailed(CallError):
    code = "dispatch_failed"
    default_detail = "Could not notify the recipient of the call."


class TokenUnavailable(CallError):
    code = "token_unavailable"
    default_detail = "Unable to obtain call credentials."


class SdkConnectError(CallError):
    code = "sdk_connect_error"
    default_detail = "Could not connect to the call room."


class NotificationNotFound(CallError):
    code = "notification_not_found"
    default_detail = "Notification not found."
