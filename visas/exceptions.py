from django.core.exceptions import ObjectDoesNotExist, ValidationError


class NotFound(ObjectDoesNotExist):
    """Unknown application, traveler, product or field reference."""
    status_code = 404


class InvalidInput(ValidationError):
    """Payload rejected: unknown field id, missing/invalid value, bad file, ..."""
    status_code = 400


class StateConflict(ValidationError):
    """The application is not in a state that permits the operation."""
    status_code = 409


def error_message(exc):
    if isinstance(exc, ValidationError):
        return "; ".join(exc.messages)
    return str(exc)
