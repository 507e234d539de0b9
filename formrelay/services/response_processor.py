"""Response processor — validates raw client replies against their request.

Given the schema that was sent, the interpretation tags kept server-side,
and the untyped value the client sent back, the processor either returns
the exact typed value the caller expects or raises
`ResponseValidationError` naming the offending field.

Processing is all-or-nothing: the raw payload is never modified and a
converted result is only returned once every field has passed.

Usage:
    processor = ResponseProcessor()
    values = processor.process(form_schema, tags, [True, "Bob"])
"""
from __future__ import annotations

from typing import Any, Sequence

import structlog

from formrelay.models.schemas import (
    DialogSchema,
    DropdownField,
    FieldSpec,
    FormSchema,
    InputField,
    LabelField,
    MenuSchema,
    ResponseTag,
    RequestSchema,
    ReturnKind,
    SliderField,
    StepSliderField,
    ToggleField,
)
from formrelay.utils.exceptions import ProcessorInvariantError, ResponseValidationError

logger = structlog.get_logger(__name__)


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid index
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return _is_int(value) or isinstance(value, float)


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


class ResponseProcessor:
    """Validates and converts raw replies for dialogs, menus and forms.

    Stateless; one instance can serve every request.
    """

    def process(self, schema: RequestSchema, tags: Sequence[ResponseTag | None], response: Any) -> Any:
        """Validate `response` against `schema` and return the typed result.

        Args:
            schema: The DialogSchema, MenuSchema or FormSchema that was sent.
            tags: One entry per form field (ignored for dialogs and menus).
            response: Raw, non-null reply from the client.

        Returns:
            bool for a dialog, button index for a menu, list of converted
            field values for a form.

        Raises:
            ResponseValidationError: If the reply does not fit the schema.
            ProcessorInvariantError: If the schema kind is unknown.
        """
        if isinstance(schema, DialogSchema):
            return self._process_dialog(response)
        if isinstance(schema, MenuSchema):
            return self._process_menu(schema, response)
        if isinstance(schema, FormSchema):
            return self._process_form(schema, tags, response)
        raise ProcessorInvariantError(f"Invalid request schema: {type(schema).__name__}")

    # ── Dialog / Menu ─────────────────────────────────────────────────

    @staticmethod
    def _process_dialog(response: Any) -> bool:
        if not isinstance(response, bool):
            raise ResponseValidationError(f"Unexpected response: {response!r}, expected boolean")
        return response

    @staticmethod
    def _process_menu(schema: MenuSchema, response: Any) -> int:
        if not _is_int(response):
            raise ResponseValidationError(f"Unexpected response: {_type_name(response)}, expected integer")
        if not 0 <= response < len(schema.buttons):
            raise ResponseValidationError(f"Unexpected response: {response}, index out of range")
        return response

    # ── Form ──────────────────────────────────────────────────────────

    def _process_form(
        self, schema: FormSchema, tags: Sequence[ResponseTag | None], response: Any
    ) -> list[Any]:
        if not isinstance(response, list):
            raise ResponseValidationError(f"Unexpected response: {_type_name(response)}, expected list")
        if len(response) != len(schema.content):
            raise ResponseValidationError(
                f"Unexpected response, expected receiving {len(schema.content)} values, "
                f"got {len(response)} values"
            )

        converted: list[Any] = []
        for index, field in enumerate(schema.content):
            tag = tags[index] if index < len(tags) else None
            converted.append(self._process_field(field, tag, response[index]))
        return converted

    def _process_field(self, field: FieldSpec, tag: ResponseTag | None, value: Any) -> Any:
        where = f"{field.type} {field.text}"

        if isinstance(field, DropdownField):
            index = self._check_index(where, value, len(field.options))
            return self._apply_tag(where, field, tag, index)

        if isinstance(field, InputField):
            if not isinstance(value, str):
                raise ResponseValidationError(f"Unexpected response for {where}, expected string")
            return value

        if isinstance(field, LabelField):
            if value is not None:
                raise ResponseValidationError(f"Unexpected response for {where}, expected null")
            return None

        if isinstance(field, SliderField):
            # step alignment is not enforced
            if not _is_number(value):
                raise ResponseValidationError(f"Unexpected response for {where}, expected numeric")
            # positive comparisons so NaN fails
            if not value >= field.min:
                raise ResponseValidationError(
                    f"Unexpected response for {where}, expected value >= {field.min:g}, got {value}"
                )
            if not value <= field.max:
                raise ResponseValidationError(
                    f"Unexpected response for {where}, expected value <= {field.max:g}, got {value}"
                )
            return value

        if isinstance(field, StepSliderField):
            index = self._check_index(where, value, len(field.steps))
            return field.steps[index]

        if isinstance(field, ToggleField):
            if not isinstance(value, bool):
                raise ResponseValidationError(f"Unexpected response for {where}, expected boolean")
            return value

        raise ProcessorInvariantError(f"Unexpected form field type: {type(field).__name__}")

    @staticmethod
    def _check_index(where: str, value: Any, count: int) -> int:
        if not _is_int(value):
            raise ResponseValidationError(f"Unexpected response for {where}, expected integer")
        if value < 0:
            raise ResponseValidationError(f"Unexpected response for {where}, value is negative")
        if value >= count:
            raise ResponseValidationError(f"Unexpected response for {where}, value exceeds range")
        return value

    @staticmethod
    def _apply_tag(where: str, field: DropdownField, tag: ResponseTag | None, index: int) -> Any:
        if tag is None:
            raise ProcessorInvariantError(f"Missing dropdown return tag for {where}")
        if tag.return_kind == ReturnKind.INDEX:
            return index
        if tag.return_kind == ReturnKind.VALUE:
            return field.options[index]
        if tag.return_kind == ReturnKind.MAPPING:
            return tag.mapping[index]
        logger.error("unknown_return_tag", field=where, tag=str(tag.return_kind))
        raise ProcessorInvariantError(f"Unexpected dropdown return tag: {tag.return_kind}")
