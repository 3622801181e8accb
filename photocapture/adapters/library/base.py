from enum import Enum


class AuthorizationStatus(str, Enum):
    AUTHORIZED = "authorized"
    DENIED = "denied"


class AssetLibrary:
    """Asset persistence coordinator.

    Both calls report back through a callback, possibly on another thread.
    """

    def request_authorization(self, handler):
        """Call handler(AuthorizationStatus) once."""
        raise NotImplementedError

    def perform_changes(self, requests, completion):
        """Save every AssetCreationRequest as one all-or-nothing change.

        Calls completion(success: bool, error: Exception | None) once.
        Resources with should_move_file must not survive a successful save.
        """
        raise NotImplementedError
