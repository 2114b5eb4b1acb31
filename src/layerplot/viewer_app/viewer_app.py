"""Vowel chart viewer: standalone NiceGUI application.

Runs in native or web mode via env vars. Uses @ui.page("/") pattern.

Run:
    python -m layerplot.viewer_app.viewer_app

Env vars:
    LAYERPLOT_CSV: CSV with vowel, F1, F2 columns (default: synthetic data)
    LAYERPLOT_GUI_NATIVE: 1/0 (default 0)
    LAYERPLOT_GUI_RELOAD: 1/0 (default 0)
    HOST: bind host (default 127.0.0.1 native, 0.0.0.0 web)
    PORT: bind port (default find_open_port native, 8080 web)
"""

from __future__ import annotations

import os

from nicegui import ui

from layerplot.errors import LayerPlotError
from layerplot.plot_settings import PlotSettingsStore
from layerplot.render.plotly_figure import PlotlyFigureBuilder
from layerplot.utils.logging import configure_logging, get_logger
from layerplot.viewer_app.chart import build_vowel_plot, load_viewer_dataset

logger = get_logger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    """Parse env var as bool; if unset/invalid returns default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    """Parse env var as int; if unset/invalid returns default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Page
# ---------------------------------------------------------------------------

@ui.page("/")
def home() -> None:
    """Home page: one vowel chart plus the plan's diagnostics."""
    ui.page_title("Vowel chart")

    csv_path = os.getenv("LAYERPLOT_CSV")
    with ui.column().classes("w-full h-screen p-4 gap-2"):
        try:
            dataset = load_viewer_dataset(csv_path)
            store = PlotSettingsStore.load()
            plan = build_vowel_plot(dataset, store.settings).build()
        except FileNotFoundError:
            ui.label(f"{csv_path} not found.").classes("text-negative")
            return
        except LayerPlotError as e:
            logger.exception(f"Failed to build vowel chart: {e}")
            ui.label(f"Failed to build chart: {e}").classes("text-negative")
            return

        ui.plotly(PlotlyFigureBuilder().make_figure(plan)).classes("w-full flex-1")
        for diag in plan.diagnostics:
            css = "text-negative" if diag in plan.errors else "text-warning"
            ui.label(f"{diag.severity.value}: {diag.message}").classes(f"text-xs {css}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(*, reload: bool | None = None, native_bool: bool | None = None) -> None:
    """Start the viewer.

    Defaults (no env vars, no args):
      - native=False
      - reload=False
    """
    configure_logging()
    native_bool = _env_bool("LAYERPLOT_GUI_NATIVE", False) if native_bool is None else native_bool
    reload = _env_bool("LAYERPLOT_GUI_RELOAD", False) if reload is None else reload

    from nicegui import native as native_module
    if native_bool:
        port = _env_int("PORT", native_module.find_open_port())
    else:
        port = _env_int("PORT", 8080)

    default_host = "127.0.0.1" if native_bool else "0.0.0.0"
    host = os.getenv("HOST", default_host)

    logger.info(f"Starting vowel chart viewer: host={host} port={port} reload={reload} native={native_bool}")

    run_kwargs: dict = {
        "host": host,
        "port": port,
        "reload": reload,
        "native": native_bool,
        "title": "Vowel chart",
    }
    if native_bool:
        run_kwargs["window_size"] = (1000, 800)
    ui.run(**run_kwargs)


if __name__ in {"__main__", "__mp_main__"}:
    main()
