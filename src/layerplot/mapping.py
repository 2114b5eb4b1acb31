"""Aesthetic bindings and the channel-wise mapping resolver.

A plot carries one global :class:`AestheticBinding`; each layer may carry a
partial one. The effective binding of a layer is resolved channel by channel:
a channel the layer binds replaces the global binding for that channel only,
every other channel is inherited unchanged. Nothing else is synthesized.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Union

from layerplot.errors import UnresolvedChannelError

CHANNELS: tuple[str, ...] = ("x", "y", "color", "fill", "shape", "label")
CATEGORICAL_CHANNELS: tuple[str, ...] = ("color", "fill", "shape")

# geometry value -> channels that must resolve
REQUIRED_CHANNELS: dict[str, tuple[str, ...]] = {
    "point": ("x", "y"),
    "text": ("x", "y", "label"),
    "label": ("x", "y", "label"),
    "polygon": ("x", "y"),
}

# geometry value -> channels the geometry draws; other bound channels are ignored
CONSUMED_CHANNELS: dict[str, tuple[str, ...]] = {
    "point": ("x", "y", "color", "fill", "shape"),
    "text": ("x", "y", "label", "color"),
    "label": ("x", "y", "label", "color", "fill"),
    "polygon": ("x", "y", "color", "fill"),
}

# channels searched, in order, for the field that splits records into groups
GROUP_FIELD_CHANNELS: tuple[str, ...] = ("color", "fill", "label")


@dataclass(frozen=True)
class Field:
    """Dynamic binding: the channel takes each record's value of ``name``."""
    name: str

    def __repr__(self) -> str:
        return f"Field({self.name!r})"


@dataclass(frozen=True)
class Constant:
    """Static binding: the channel takes ``value`` for every record of the layer."""
    value: Any

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"


BindingValue = Union[Field, Constant]


def _as_binding_value(value: Any) -> BindingValue:
    if isinstance(value, (Field, Constant)):
        return value
    if isinstance(value, str):
        return Field(value)
    return Constant(value)


class AestheticBinding(Mapping[str, BindingValue]):
    """Immutable mapping from channel name to :class:`Field` or :class:`Constant`."""

    __slots__ = ("_channels",)

    def __init__(self, channels: Optional[Mapping[str, Any]] = None) -> None:
        resolved: dict[str, BindingValue] = {}
        for channel, value in (channels or {}).items():
            if channel not in CHANNELS:
                raise ValueError(f"unknown aesthetic channel {channel!r}; expected one of {CHANNELS}")
            if value is None:
                continue
            resolved[channel] = _as_binding_value(value)
        # keep a stable channel order regardless of keyword order
        self._channels = {c: resolved[c] for c in CHANNELS if c in resolved}

    def __getitem__(self, channel: str) -> BindingValue:
        return self._channels[channel]

    def __iter__(self) -> Iterator[str]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._channels.items())
        return f"aes({inner})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AestheticBinding):
            return self._channels == other._channels
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._channels.items()))


def aes(**channels: Any) -> AestheticBinding:
    """Build an :class:`AestheticBinding`.

    Strings bind a field, :class:`Field`/:class:`Constant` pass through, any
    other value becomes a constant. ``None`` leaves the channel unbound.

    Example:
        aes(x="F2", y="F1", color="vowel", label=Constant("*"))
    """
    return AestheticBinding(channels)


# -----------------------------------------------------------------------------
# Binding sources (explicit inheritance)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Inherited:
    """The channel's value comes from the global binding."""
    value: BindingValue


@dataclass(frozen=True)
class Overridden:
    """The channel's value was supplied by the layer itself."""
    value: BindingValue


BindingSource = Union[Inherited, Overridden]


@dataclass(frozen=True)
class EffectiveBinding:
    """Resolved per-layer binding snapshot.

    Attributes:
        sources: channel -> Inherited/Overridden, for every bound channel.
        geometry: Geometry the binding was resolved for.
        layer_index: Position of the layer in the stack.
    """

    sources: Mapping[str, BindingSource]
    geometry: str
    layer_index: Optional[int] = None

    def __contains__(self, channel: object) -> bool:
        return channel in self.sources

    def get(self, channel: str) -> Optional[BindingValue]:
        src = self.sources.get(channel)
        return None if src is None else src.value

    def __getitem__(self, channel: str) -> BindingValue:
        return self.sources[channel].value

    def field(self, channel: str) -> Optional[str]:
        """Field name bound to ``channel``, or None if unbound or constant."""
        value = self.get(channel)
        return value.name if isinstance(value, Field) else None

    def is_overridden(self, channel: str) -> bool:
        return isinstance(self.sources.get(channel), Overridden)

    def channels(self) -> tuple[str, ...]:
        return tuple(self.sources)

    def referenced_fields(self) -> list[str]:
        """Distinct field names the binding reads, in channel order."""
        out: list[str] = []
        for src in self.sources.values():
            if isinstance(src.value, Field) and src.value.name not in out:
                out.append(src.value.name)
        return out

    def consumes(self, channel: str) -> bool:
        """True when the geometry draws ``channel``."""
        return channel in CONSUMED_CHANNELS[self.geometry]

    def consumed_fields(self) -> list[str]:
        """Distinct field names read by channels the geometry draws."""
        out: list[str] = []
        for channel, src in self.sources.items():
            if self.consumes(channel) and isinstance(src.value, Field) and src.value.name not in out:
                out.append(src.value.name)
        return out


def resolve_binding(
    global_binding: Optional[AestheticBinding],
    layer_binding: Optional[AestheticBinding],
    geometry: str,
    layer_index: Optional[int] = None,
) -> EffectiveBinding:
    """Resolve a layer's effective binding by channel-wise override.

    ``effective[c] = layer[c] if c in layer else global[c]``.

    Args:
        global_binding: Plot-level binding (may be None or empty).
        layer_binding: Layer-level partial binding (may be None or empty).
        geometry: Geometry kind value ("point", "text", "label", "polygon").
        layer_index: Layer position, reported in errors.

    Returns:
        EffectiveBinding snapshot.

    Raises:
        UnresolvedChannelError: A channel required by ``geometry`` is bound by neither.
        ValueError: ``geometry`` is unknown.
    """
    if geometry not in REQUIRED_CHANNELS:
        raise ValueError(f"unknown geometry {geometry!r}")
    global_binding = global_binding or AestheticBinding()
    layer_binding = layer_binding or AestheticBinding()

    sources: dict[str, BindingSource] = {}
    for channel in CHANNELS:
        if channel in layer_binding:
            sources[channel] = Overridden(layer_binding[channel])
        elif channel in global_binding:
            sources[channel] = Inherited(global_binding[channel])

    for channel in REQUIRED_CHANNELS[geometry]:
        if channel not in sources:
            raise UnresolvedChannelError(layer_index, channel, geometry)

    return EffectiveBinding(sources=MappingProxyType(sources), geometry=geometry, layer_index=layer_index)
