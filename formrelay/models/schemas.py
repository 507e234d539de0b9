"""Pydantic models describing outbound requests.

A request schema is an immutable snapshot of what the client is asked to
show: a two-button dialog, a button menu, or a custom form made of field
descriptors. Schemas are frozen so one instance can be shared across any
number of in-flight requests.

Interpretation tags (how a raw dropdown index is turned into the caller's
value) are kept in `ResponseTag` beside the schema, never inside it; the
client never sees them.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ══════════════════════════════════════════════════════════════════════
# Buttons
# ══════════════════════════════════════════════════════════════════════

class ButtonImage(_Frozen):
    """Image shown on a menu button, from game resources or a URL."""
    type: Literal["path", "url"]
    data: str = Field(..., min_length=1)


class ButtonSpec(_Frozen):
    """A single menu button as the client sees it."""
    text: str
    image: ButtonImage | None = None


# ══════════════════════════════════════════════════════════════════════
# Form Fields
# ══════════════════════════════════════════════════════════════════════

class _FieldBase(_Frozen):
    text: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class DropdownField(_FieldBase):
    type: Literal["dropdown"] = "dropdown"
    options: tuple[str, ...]
    default: int = 0


class InputField(_FieldBase):
    type: Literal["input"] = "input"
    placeholder: str = ""
    default: str = ""


class LabelField(_FieldBase):
    type: Literal["label"] = "label"


class SliderField(_FieldBase):
    type: Literal["slider"] = "slider"
    min: float
    max: float
    step: float = 0.0
    default: float = 0.0


class StepSliderField(_FieldBase):
    type: Literal["step_slider"] = "step_slider"
    steps: tuple[str, ...]
    default: int = 0


class ToggleField(_FieldBase):
    type: Literal["toggle"] = "toggle"
    default: bool = False


FieldSpec = Annotated[
    Union[DropdownField, InputField, LabelField, SliderField, StepSliderField, ToggleField],
    Field(discriminator="type"),
]


# ══════════════════════════════════════════════════════════════════════
# Interpretation Tags
# ══════════════════════════════════════════════════════════════════════

class ReturnKind(str, Enum):
    """How a dropdown's raw index is presented to the caller."""
    INDEX = "index"
    VALUE = "value"
    MAPPING = "mapping"


class ResponseTag(_Frozen):
    """Server-side instruction for converting one field's raw answer.

    Attributes:
        return_kind: Which representation the caller wants.
        mapping: Caller-chosen values parallel to the field's options,
            only used with `ReturnKind.MAPPING`.
    """
    return_kind: ReturnKind
    mapping: tuple[Any, ...] = ()


# ══════════════════════════════════════════════════════════════════════
# Request Schemas
# ══════════════════════════════════════════════════════════════════════

class DialogSchema(_Frozen):
    """Two-button yes/no style dialog. Answered with a boolean."""
    kind: Literal["dialog"] = "dialog"
    title: str
    content: str
    button1: str
    button2: str

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "modal",
            "title": self.title,
            "content": self.content,
            "button1": self.button1,
            "button2": self.button2,
        }


class MenuSchema(_Frozen):
    """List of buttons. Answered with the index of the pressed button."""
    kind: Literal["menu"] = "menu"
    title: str
    content: str
    buttons: tuple[ButtonSpec, ...]

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "form",
            "title": self.title,
            "content": self.content,
            "buttons": [button.model_dump(mode="json") for button in self.buttons],
        }


class FormSchema(_Frozen):
    """Custom form of typed fields. Answered with one raw value per field."""
    kind: Literal["form"] = "form"
    title: str
    content: tuple[FieldSpec, ...]

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "custom_form",
            "title": self.title,
            "content": [field.to_wire() for field in self.content],
        }


RequestSchema = Annotated[
    Union[DialogSchema, MenuSchema, FormSchema],
    Field(discriminator="kind"),
]
