"""
Error taxonomy shared by the journal, auth and dictation layers.

Every error carries the HTTP status the API answers with and an English
message with an optional Hindi variant. None of them is raised after state
has been written, so a caught error always means the stored data is
exactly what it was before the call.
"""


class TravelLogError(Exception):
    status_code = 400
    # Hindi text used when a raise site gives none
    hi_fallback = None

    def __init__(self, message: str, hi: str = None):
        super().__init__(message)
        self.message = message
        self.hi = hi or self.hi_fallback

    def localized(self, lang: str = "en") -> str:
        if lang == "hi" and self.hi:
            return self.hi
        return self.message


class ValidationError(TravelLogError):
    """Malformed input rejected before any lookup or service call."""
    status_code = 422


class NotFound(TravelLogError):
    status_code = 404


class AlreadyExists(TravelLogError):
    status_code = 409


class InvalidCredential(TravelLogError):
    status_code = 401


class ServiceError(TravelLogError):
    """Transcription or narrative generation failed or returned garbage."""
    status_code = 502
    hi_fallback = "यात्रा को प्रोसेस करने में विफल। कृपया पुन: प्रयास करें।"


class DeviceError(TravelLogError):
    """The captured audio payload is missing or unusable."""
    status_code = 400
    hi_fallback = "कोई ऑडियो रिकॉर्ड नहीं हुआ। कृपया माइक्रोफोन की अनुमति जांचें।"


class Busy(TravelLogError):
    """A dictation cycle is already processing for this trip."""
    status_code = 409
    hi_fallback = "इस यात्रा की एक रिकॉर्डिंग पहले से प्रोसेस हो रही है।"
