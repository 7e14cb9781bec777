"""
Figure wrapper and figure collection for pipeline outputs.

Every plotting method returns a Figure regardless of whether matplotlib or
plotly drew it, so the pipeline can save, embed and close figures through
one interface. FigureCollection gathers the figures of a run and renders
them, together with result tables, into a single self-contained HTML report.
"""

from __future__ import annotations

import base64
import html
import io
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Literal, Optional, Sequence, Union

import matplotlib.figure
import matplotlib.pyplot as plt
import pandas as pd

from geneflow.utils.fileio import atomic_write_text

FigureType = Union[matplotlib.figure.Figure, Any]  # Any for plotly.graph_objects.Figure
OutputFormat = Literal["png", "pdf", "svg", "html", "json"]

_FORMATS = ("png", "pdf", "svg", "html", "json")


@dataclass
class Figure:
    """
    One rendered plot plus the text that explains it.

    Attributes
    ----------
    fig : matplotlib.figure.Figure or plotly.graph_objects.Figure
        The drawn figure
    title : str
        Short title, used as the report section heading
    description : str
        One or two sentences on what the plot shows
    figure_type : {"matplotlib", "plotly"}
        Library that drew the figure
    metadata : dict
        Parameters used to draw it (components, colour column, thresholds)

    Examples
    --------
    >>> figure = viz.plot_pca(pca_result, color_by="condition")
    >>> figure.save("figures/pca.pdf")
    """
    fig: FigureType
    title: str
    description: str
    figure_type: Literal["matplotlib", "plotly"]
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.metadata.setdefault("created_at", datetime.now().isoformat())

    def save(
        self,
        path: Path | str,
        format: Optional[OutputFormat] = None,
        dpi: int = 300,
        **kwargs
    ) -> Path:
        """
        Save the figure, inferring the format from the extension.

        Unknown extensions fall back to PNG. plotly figures saved as PNG, PDF
        or SVG need kaleido; HTML and JSON do not.

        Returns
        -------
        Path
            The written file.
        """
        path = Path(path)
        if format is None:
            format = path.suffix.lstrip(".").lower()
            if format not in _FORMATS:
                format = "png"

        path.parent.mkdir(parents=True, exist_ok=True)
        if self.figure_type == "matplotlib":
            self._save_matplotlib(path, format, dpi, **kwargs)
        else:
            self._save_plotly(path, format, **kwargs)
        return path

    def _save_matplotlib(self, path: Path, format: str, dpi: int, **kwargs):
        save_kwargs = {"dpi": dpi, "bbox_inches": "tight", "facecolor": "white", **kwargs}

        if format == "html":
            img_b64 = self.to_base64(format="png", dpi=dpi)
            title = html.escape(self.title)
            path.write_text(
                f"<!DOCTYPE html>\n<html><head><title>{title}</title></head>\n"
                f'<body style="margin:0;text-align:center;background:#f5f5f5;">'
                f'<img src="data:image/png;base64,{img_b64}" alt="{title}"></body></html>'
            )
        elif format == "json":
            raise ValueError("JSON export is only available for plotly figures")
        else:
            self.fig.savefig(path, format=format, **save_kwargs)

    def _save_plotly(self, path: Path, format: str, **kwargs):
        if format == "html":
            self.fig.write_html(path, include_plotlyjs="cdn", full_html=True, **kwargs)
        elif format == "json":
            self.fig.write_json(path, **kwargs)
        else:
            try:
                self.fig.write_image(path, format=format, scale=2, **kwargs)
            except ValueError as e:
                if "kaleido" in str(e).lower():
                    raise RuntimeError(
                        "Static export of interactive figures requires kaleido "
                        "(pip install kaleido); save as .html instead"
                    ) from e
                raise

    def show(self):
        """Display the figure (notebook or interactive backend)."""
        if self.figure_type == "matplotlib":
            plt.show()
        else:
            self.fig.show()

    def to_base64(self, format: str = "png", dpi: int = 150) -> str:
        """Encode the figure as a base64 image for embedding in HTML."""
        buf = io.BytesIO()
        if self.figure_type == "matplotlib":
            self.fig.savefig(buf, format=format, dpi=dpi, bbox_inches="tight", facecolor="white")
        else:
            self.fig.write_image(buf, format=format, scale=2)
        return base64.b64encode(buf.getvalue()).decode()

    def to_html_fragment(self) -> str:
        """Report-ready HTML for the figure content."""
        if self.figure_type == "plotly":
            return self.fig.to_html(include_plotlyjs=False, full_html=False)
        img_b64 = self.to_base64(format="png", dpi=150)
        return f'<img src="data:image/png;base64,{img_b64}" alt="{html.escape(self.title)}">'

    def close(self):
        """Release the matplotlib figure."""
        if self.figure_type == "matplotlib":
            plt.close(self.fig)


class FigureCollection:
    """
    Named figures of one run, kept in insertion order.

    Examples
    --------
    >>> figures = FigureCollection()
    >>> figures.add("pca", viz.plot_pca(pca_result, color_by="condition"))
    >>> figures.add("volcano", viz.plot_volcano(result["tumor_vs_normal"]))
    >>> figures.save_all("results/figures", format="pdf")
    >>> figures.to_html_report("results/report.html", title="BRCA tumour vs normal")
    """

    def __init__(self):
        self.figures: dict[str, Figure] = {}

    def add(self, key: str, fig: Figure) -> FigureCollection:
        """Add (or replace) a figure; returns self for chaining."""
        self.figures[key] = fig
        return self

    def get(self, key: str) -> Optional[Figure]:
        return self.figures.get(key)

    def __getitem__(self, key: str) -> Figure:
        return self.figures[key]

    def __contains__(self, key: object) -> bool:
        return key in self.figures

    def __len__(self) -> int:
        return len(self.figures)

    def __iter__(self) -> Iterator[tuple[str, Figure]]:
        return iter(list(self.figures.items()))

    def save_all(
        self,
        output_dir: Path | str,
        format: OutputFormat = "png",
        dpi: int = 300
    ) -> list[Path]:
        """
        Save every figure as ``{output_dir}/{key}.{format}``.

        plotly figures are written as HTML when a static format is requested,
        so a missing kaleido install does not abort a run.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        saved = []
        for key, fig in self:
            fig_format = "html" if fig.figure_type == "plotly" and format not in ("html", "json") else format
            saved.append(fig.save(output_dir / f"{key}.{fig_format}", format=fig_format, dpi=dpi))
        return saved

    def to_html_report(
        self,
        output_path: Path | str,
        title: str = "Expression Analysis Report",
        description: str = "",
        tables: Optional[Sequence[tuple[str, pd.DataFrame]]] = None,
    ) -> Path:
        """
        Write one HTML file with every figure and the given tables.

        Parameters
        ----------
        output_path : Path or str
            Destination file.
        title : str
            Report heading.
        description : str
            Paragraph under the heading.
        tables : sequence of (heading, DataFrame), optional
            Summary tables rendered after the figures.

        Returns
        -------
        Path
            The written report.
        """
        sections = []
        for key, fig in self:
            sections.append(
                f'<section class="figure-section" id="{html.escape(key)}">\n'
                f"  <h2>{html.escape(fig.title)}</h2>\n"
                f'  <p class="description">{html.escape(fig.description)}</p>\n'
                f'  <div class="figure-content">{fig.to_html_fragment()}</div>\n'
                f"</section>"
            )
        for heading, table in tables or []:
            sections.append(
                f'<section class="table-section">\n'
                f"  <h2>{html.escape(heading)}</h2>\n"
                f'  {table.to_html(classes="result-table", border=0, na_rep="NA", float_format=lambda v: f"{v:.4g}")}\n'
                f"</section>"
            )

        has_plotly = any(fig.figure_type == "plotly" for _, fig in self)
        page = _REPORT_TEMPLATE.format(
            title=html.escape(title),
            description=html.escape(description),
            timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            plotly_script='<script src="https://cdn.plot.ly/plotly-2.27.0.min.js"></script>' if has_plotly else "",
            body="\n".join(sections),
        )
        return atomic_write_text(output_path, page)

    def close_all(self):
        """Close every figure and empty the collection."""
        for _, fig in self:
            fig.close()
        self.figures.clear()


_REPORT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{title}</title>
{plotly_script}
<style>
  body {{ font-family: -apple-system, "Segoe UI", Roboto, sans-serif; color: #1a1a1a;
         background: #fafafa; margin: 0; padding: 2rem; line-height: 1.5; }}
  .container {{ max-width: 1200px; margin: 0 auto; }}
  header {{ border-bottom: 2px solid #e5e7eb; margin-bottom: 2rem; }}
  .timestamp, .description {{ color: #6b7280; font-size: 0.875rem; }}
  section {{ background: #fff; border-radius: 8px; padding: 1.5rem; margin-bottom: 1.5rem;
            box-shadow: 0 1px 3px rgba(0,0,0,0.1); overflow-x: auto; }}
  .figure-content {{ text-align: center; }}
  .figure-content img {{ max-width: 100%; height: auto; }}
  table.result-table {{ border-collapse: collapse; font-size: 0.8rem; }}
  table.result-table th, table.result-table td {{ padding: 0.25rem 0.6rem; border-bottom: 1px solid #e5e7eb; }}
</style>
</head>
<body>
<div class="container">
<header>
  <h1>{title}</h1>
  <p class="timestamp">Generated: {timestamp}</p>
  <p>{description}</p>
</header>
<main>
{body}
</main>
</div>
</body>
</html>"""
