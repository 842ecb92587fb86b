"""Schema validation of CSV rows before anything is sent to the API."""

import json
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..utils.exceptions import RecordViolation, RedirectValidationError

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_records(schema: type[ModelT], rows: list[dict[str, Any]]) -> list[ModelT]:
    """
    Validate every row against a pydantic model.

    All rows are checked before failing, so the operator sees every problem
    in one pass instead of fixing the file one error at a time.

    Args:
        schema: Model class (Redirect for imports, RedirectPath for deletes)
        rows: Rows in canonical order, as returned by read_records

    Returns:
        Validated models, in the same order as rows

    Raises:
        RedirectValidationError: If any row fails; lists every violation
    """
    records: list[ModelT] = []
    violations: list[RecordViolation] = []

    for index, row in enumerate(rows):
        try:
            records.append(schema.model_validate(row))
        except PydanticValidationError as e:
            for error in e.errors():
                field = ".".join(str(loc) for loc in error["loc"]) or "<row>"
                violations.append(RecordViolation(index, field, error["msg"], row))

    if violations:
        logger.error("Errors validating input", violations=len(violations), rows=len(rows))
        for violation in violations:
            logger.error(
                "Invalid record",
                index=violation.index,
                field=violation.field,
                message=violation.message,
                record=json.dumps(violation.record, indent=2, default=str),
            )
        raise RedirectValidationError(violations)

    logger.debug("Input validated", schema=schema.__name__, rows=len(records))
    return records


def format_violations(error: RedirectValidationError, limit: int = 20) -> str:
    """
    Human-readable listing of violations for console output.

    Args:
        error: The validation failure
        limit: Maximum violations to print in full

    Returns:
        Multi-line summary including each offending record's JSON
    """
    lines = [f"Found {len(error.violations)} validation errors:"]
    for violation in error.violations[:limit]:
        lines.append("-----")
        lines.append(f"{violation.message} - in {violation.index} ({violation.field})")
        lines.append(f"JSON content:\n{json.dumps(violation.record, indent=2, default=str)}")
    if len(error.violations) > limit:
        lines.append(f"... and {len(error.violations) - limit} more errors")
    lines.append("-----")
    return "\n".join(lines)
