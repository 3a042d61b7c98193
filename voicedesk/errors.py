# errors.py
"""Error taxonomy shared by the resolver / issuer / dispatcher pipeline.

Every error carries a machine-readable ``code``, the HTTP status the tool
endpoints answer with, and a ``speak`` line the voice agent can read out.
"""
from typing import Any, Dict, Optional


class VoicedeskError(Exception):
    code = "error"
    status_code = 500
    speak = "I'm having trouble with that right now. Let me have someone from our team follow up with you directly."

    def __init__(self, message: str = "", *, speak: Optional[str] = None, **details: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        if speak:
            self.speak = speak
        self.details: Dict[str, Any] = details

    def to_dict(self) -> dict:
        body = {"ok": False, "error": self.code, "message": self.message, "speak": self.speak}
        body.update({k: v for k, v in self.details.items() if v is not None})
        return body


class NotFound(VoicedeskError):
    code = "not_found"
    status_code = 404
    speak = "I couldn't find that order. Can you give me your order number?"


class InvalidContact(VoicedeskError):
    code = "invalid_contact"
    status_code = 422
    speak = "I didn't quite catch that number. Could you say it again for me, digit by digit?"


class IssuerError(VoicedeskError):
    code = "issuer_error"
    status_code = 502
    speak = "I'm having trouble creating that discount code right now. Let me have someone from our team follow up with you directly."


class CodeCollision(IssuerError):
    code = "code_collision"


class DispatchError(VoicedeskError):
    code = "dispatch_failed"
    status_code = 502
    speak = "I created your discount but couldn't get it sent over just now. Let me have someone follow up directly."


class BackendUnavailable(VoicedeskError):
    code = "backend_unavailable"
    status_code = 503


class OutsideCallWindow(VoicedeskError):
    code = "outside_call_window"
    status_code = 403


class ContactOptedOut(VoicedeskError):
    code = "opted_out"
    status_code = 409
