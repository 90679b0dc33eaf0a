"""Tests for validation utility functions."""

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from clusterdeck.config.validator import (
    descriptor_validation_error,
    flatten_pydantic_errors,
)
from clusterdeck.lib.errors import ValidationError


class SampleModel(BaseModel):
    """Simple test model for validation testing."""

    name: str = Field(min_length=1)
    poll_interval: float = Field(gt=0.0)


def _errors_for(**kwargs: object) -> PydanticValidationError:
    try:
        SampleModel(**kwargs)  # type: ignore[arg-type]
    except PydanticValidationError as e:
        return e
    raise AssertionError("validation should have failed")


class TestFlattenPydanticErrors:
    """Tests for flatten_pydantic_errors() function."""

    def test_flatten_pydantic_errors_with_simple_error(self) -> None:
        """Test flattening simple Pydantic validation error."""
        result = flatten_pydantic_errors(_errors_for(name="", poll_interval=1.0))
        assert len(result) == 1
        assert "Field 'name'" in result[0]

    def test_flatten_pydantic_errors_with_multiple_errors(self) -> None:
        """Test flattening multiple Pydantic validation errors."""
        result = flatten_pydantic_errors(_errors_for(name="", poll_interval=-1.0))
        assert len(result) == 2
        assert all(isinstance(item, str) for item in result)


class TestDescriptorValidationError:
    """Tests for descriptor_validation_error()."""

    def test_reports_first_failing_field(self) -> None:
        """The first failing field becomes the error field."""
        error = descriptor_validation_error(
            _errors_for(name="", poll_interval=1.0), "deployment.yaml"
        )
        assert isinstance(error, ValidationError)
        assert error.field == "name"
        assert "deployment.yaml" in error.message
        assert error.actual == "''"
