"""Error taxonomy and structured diagnostics for plot composition.

Layer-level errors are fatal to a single layer (or a single group polygon);
the compositor turns them into :class:`Diagnostic` entries and keeps going.
:class:`CompositionError` and its subclasses are fatal to the whole plot.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class LayerPlotError(Exception):
    """Base class for all layerplot errors."""


class LayerError(LayerPlotError):
    """A failure that removes one layer from the plan.

    ``layer_index`` is filled in by the compositor when the error surfaces
    during composition; code that has no layer context leaves it as None.
    """

    def __init__(self, message: str, *, layer_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.layer_index = layer_index


class UnresolvedChannelError(LayerError):
    """A geometry's required channel is bound neither globally nor by the layer."""

    def __init__(self, layer_index: Optional[int], channel: str, geometry: str) -> None:
        super().__init__(
            f"layer {layer_index}: geometry {geometry!r} requires channel {channel!r}, "
            "which is bound neither globally nor by the layer",
            layer_index=layer_index,
        )
        self.channel = channel
        self.geometry = geometry


class InsufficientSamplesError(LayerError):
    """Fewer than three finite samples were given to the ellipse estimator."""

    def __init__(self, group: Any, n_samples: int, *, layer_index: Optional[int] = None) -> None:
        super().__init__(
            f"group {group!r} has {n_samples} finite sample(s); at least 3 are needed for an ellipse",
            layer_index=layer_index,
        )
        self.group = group
        self.n_samples = n_samples


class ScaleDomainError(LayerError):
    """A positional value lies outside the domain of its axis transform."""


class FieldNotFoundError(LayerPlotError, KeyError):
    """A binding or operation references a field the dataset does not have."""

    def __init__(self, field: str, available: Optional[list[str]] = None) -> None:
        msg = f"field not found: {field!r}"
        if available is not None:
            msg += f" (available: {', '.join(map(repr, available))})"
        super().__init__(msg)
        self.field = field

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0])


class UnknownCategoryError(LayerPlotError):
    """An explicit legend order (breaks) names a value absent from the data."""

    def __init__(self, channel: str, value: Any) -> None:
        super().__init__(f"breaks for {channel!r} reference {value!r}, which is not in the data")
        self.channel = channel
        self.value = value


class CompositionError(LayerPlotError):
    """A global configuration problem; no plan can be produced."""


class ConflictingScaleError(CompositionError):
    """Two contradictory coordinate transforms were declared for one axis."""


class DegenerateCovarianceWarning(UserWarning):
    """Samples are (nearly) collinear; the ellipse collapses to a thin polygon."""


class Severity(Enum):
    """Severity of a diagnostic."""
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """Structured report of a recoverable problem attached to a RenderPlan."""

    severity: Severity
    code: str
    message: str
    layer_index: Optional[int] = None
    group: Any = None
    channel: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        layer_index: Optional[int] = None,
        severity: Severity = Severity.ERROR,
    ) -> "Diagnostic":
        """Build a diagnostic from an exception, keeping its class name as the code."""
        if layer_index is None:
            layer_index = getattr(exc, "layer_index", None)
        return cls(
            severity=severity,
            code=type(exc).__name__,
            message=str(exc),
            layer_index=layer_index,
            group=getattr(exc, "group", None),
            channel=getattr(exc, "channel", None),
        )

    def with_layer(self, layer_index: int) -> "Diagnostic":
        """Return a copy attributed to ``layer_index``."""
        return Diagnostic(
            severity=self.severity,
            code=self.code,
            message=self.message,
            layer_index=layer_index,
            group=self.group,
            channel=self.channel,
        )
