"""Validation utilities for clusterdeck settings and deployment descriptors."""

from pydantic import ValidationError as PydanticValidationError

from clusterdeck.lib.errors import ValidationError


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a Pydantic ValidationError into human-readable messages.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        List of messages, one per field error, e.g.
        ``"Field 'nodes.0.instance_type': Field required"``
    """
    errors: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        field_path = ".".join(str(item) for item in loc) if loc else "unknown"

        msg = error.get("msg", "Unknown error")
        if error.get("type", "") == "value_error":
            formatted = f"Field '{field_path}': {msg} (received: {error.get('input')!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"

        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]


def descriptor_validation_error(
    exc: PydanticValidationError, source: str
) -> ValidationError:
    """Build a clusterdeck ValidationError from a failed descriptor parse.

    The first failing field is reported as the error field; every failure is
    listed in the message.

    Args:
        exc: Pydantic ValidationError raised while parsing
        source: Where the descriptor came from (file path or "<input>")
    """
    errors = exc.errors()
    first_loc = errors[0].get("loc", ()) if errors else ()
    field = ".".join(str(item) for item in first_loc) or "descriptor"
    actual = repr(errors[0].get("input")) if errors else "unknown"
    return ValidationError(
        field=field,
        message=f"Invalid deployment descriptor {source}:\n  "
        + "\n  ".join(flatten_pydantic_errors(exc)),
        expected="a valid deployment descriptor",
        actual=actual,
    )
