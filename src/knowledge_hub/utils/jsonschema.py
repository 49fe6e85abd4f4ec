"""JSON Schema validation wrapper."""

from __future__ import annotations

from jsonschema import Draft202012Validator


def validate_payload(schema: dict[str, object], payload: dict[str, object]) -> list[str]:
    """Validate payload against schema and return error messages.

    Args:
        schema: JSON Schema to validate against.
        payload: Data to validate.

    Returns:
        List of error message strings, ordered by JSON path.
    """
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.absolute_path))
    return [_format_error(error) for error in errors]


def _format_error(error) -> str:
    if error.absolute_path:
        path = ".".join(str(p) for p in error.absolute_path)
        return f"{path}: {error.message}"
    return error.message


def object_schema(
    properties: dict[str, dict[str, object]],
    required: tuple[str, ...] = (),
) -> dict[str, object]:
    """Build the ``type: object`` schema used by every tool definition."""
    schema: dict[str, object] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema
