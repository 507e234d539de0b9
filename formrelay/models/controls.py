"""Builders for form controls and menu buttons.

Each control has a label shown right above it; several controls in one
form may share the same label. A control is a pair of client-side field
data and an optional server-side `ResponseTag` describing how the raw
answer is returned to the caller.

Builders validate their arguments immediately and raise
`ControlDefinitionError`, so a bad default never reaches a client.

Usage:
    from formrelay.models.controls import Button, FormControl

    fields = {
        "ack": FormControl.toggle("Accept the rules"),
        "color": FormControl.dropdown("Color", ["Red", "Green"], default="Green"),
    }
    buttons = {"shop": Button.simple("Shop"), "quit": Button.with_image_url("Quit", "https://x/q.png")}
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from formrelay.models.schemas import (
    ButtonImage,
    ButtonSpec,
    DropdownField,
    FieldSpec,
    InputField,
    LabelField,
    ResponseTag,
    ReturnKind,
    SliderField,
    StepSliderField,
    ToggleField,
)
from formrelay.utils.exceptions import ControlDefinitionError


def _index_of(values: Sequence[Any], needle: Any) -> int | None:
    """Return the first index whose value strictly equals `needle`.

    Type must match too, so `1` never selects `True` and vice versa.
    """
    for index, value in enumerate(values):
        if type(value) is type(needle) and value == needle:
            return index
    return None


def _require_non_empty(label: str, values: Sequence[Any], what: str) -> None:
    if not values:
        raise ControlDefinitionError(f"Control '{label}' needs a non-empty {what} list")


@dataclass(frozen=True)
class FormControl:
    """A form field paired with its interpretation tag.

    Attributes:
        data: Field descriptor sent to the client.
        tag: How the raw answer is converted; None for fields without one.
    """
    data: FieldSpec
    tag: ResponseTag | None = None

    @classmethod
    def _dropdown(cls, label: str, options: Sequence[str], default: int, tag: ResponseTag) -> FormControl:
        if not 0 <= default < len(options):
            raise ControlDefinitionError(
                f"Default value index '{default}' does not exist in options list: '{', '.join(options)}'"
            )
        return cls(DropdownField(text=label, options=tuple(options), default=default), tag)

    @classmethod
    def dropdown(cls, label: str, options: Sequence[str], default: str | None = None) -> FormControl:
        """Dropdown answering with the selected option string.

        `default` is one of `options`; None selects the first option.
        """
        _require_non_empty(label, options, "options")
        if default is None:
            default_index = 0
        else:
            default_index = _index_of(options, default)
            if default_index is None:
                raise ControlDefinitionError(
                    f"Default value '{default}' does not exist in options list: '{', '.join(options)}'"
                )
        return cls._dropdown(label, options, default_index, ResponseTag(return_kind=ReturnKind.VALUE))

    @classmethod
    def dropdown_index(cls, label: str, options: Sequence[str], default: int = 0) -> FormControl:
        """Dropdown answering with the index of the selected option."""
        _require_non_empty(label, options, "options")
        return cls._dropdown(label, options, default, ResponseTag(return_kind=ReturnKind.INDEX))

    @classmethod
    def dropdown_map(
        cls,
        label: str,
        options: Sequence[str],
        mapping: Sequence[Any],
        default: Any = None,
    ) -> FormControl:
        """Dropdown answering with `mapping[i]` for the selected option `i`.

        The mapping stays server-side; `default` is looked up in `mapping`,
        None selects the first entry.
        """
        _require_non_empty(label, options, "options")
        _require_non_empty(label, mapping, "mapping")
        if len(mapping) != len(options):
            raise ControlDefinitionError(
                f"Control '{label}' has {len(options)} options but {len(mapping)} mapped values"
            )
        if default is None:
            default_index = 0
        else:
            default_index = _index_of(mapping, default)
            if default_index is None:
                raise ControlDefinitionError(f"Default value '{default}' does not exist in mapping list")
        tag = ResponseTag(return_kind=ReturnKind.MAPPING, mapping=tuple(mapping))
        return cls._dropdown(label, options, default_index, tag)

    @classmethod
    def input(cls, label: str, placeholder: str = "", default: str = "") -> FormControl:
        """Free-text input answering with the raw string typed by the user."""
        return cls(InputField(text=label, placeholder=placeholder, default=default))

    @classmethod
    def label(cls, text: str) -> FormControl:
        """Static text. Always answers with None."""
        return cls(LabelField(text=text))

    @classmethod
    def slider(
        cls,
        label: str,
        min: float,
        max: float,
        step: float = 0.0,
        default: float = 0.0,
    ) -> FormControl:
        """Numeric slider answering with the number it points at."""
        return cls(SliderField(text=label, min=min, max=max, step=step, default=default))

    @classmethod
    def step_slider(cls, label: str, steps: Sequence[str], default: str | None = None) -> FormControl:
        """Slider over named steps, answering with the selected step string."""
        _require_non_empty(label, steps, "steps")
        if default is None:
            default_index = 0
        else:
            default_index = _index_of(steps, default)
            if default_index is None:
                raise ControlDefinitionError(
                    f"Default value '{default}' does not exist in steps list: '{', '.join(steps)}'"
                )
        return cls(StepSliderField(text=label, steps=tuple(steps), default=default_index))

    @classmethod
    def toggle(cls, label: str, default: bool = False) -> FormControl:
        """Checkbox answering with whether it is checked."""
        return cls(ToggleField(text=label, default=default))


@dataclass(frozen=True)
class Button:
    """A menu button, optionally carrying an image."""
    data: ButtonSpec

    @classmethod
    def simple(cls, text: str) -> Button:
        return cls(ButtonSpec(text=text))

    @classmethod
    def with_image_path(cls, text: str, path: str) -> Button:
        """Button showing an image from the client's bundled resources."""
        return cls._with_image(text, "path", path)

    @classmethod
    def with_image_url(cls, text: str, url: str) -> Button:
        """Button showing an image fetched from an online source."""
        return cls._with_image(text, "url", url)

    @classmethod
    def _with_image(cls, text: str, image_type: str, data: str) -> Button:
        if not data:
            raise ControlDefinitionError(f"Button '{text}' needs a non-empty image {image_type}")
        return cls(ButtonSpec(text=text, image=ButtonImage(type=image_type, data=data)))
