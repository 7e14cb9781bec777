"""
Colours and matplotlib/seaborn settings shared by all pipeline figures.

Conventions
-----------
- tumor = Red (#dc2626), normal = Blue (#2563eb)
- Up-regulated = Red, down-regulated = Blue, not significant = Gray
- Expression heatmaps use a diverging colormap around the row mean
- All default palettes are colorblind-safe
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

import matplotlib.pyplot as plt
import seaborn as sns


@dataclass(frozen=True)
class Palette:
    """
    Colour palette for expression figures.

    Attributes
    ----------
    tumor, normal : str
        Colours for the two workshop conditions
    up, down : str
        Significant up- and down-regulated features
    not_significant : str
        Features failing the significance threshold
    highlight : str
        Labelled or selected points
    diverging : str
        Colormap for centered expression (heatmaps)
    sequential : str
        Colormap for magnitudes (adjusted p-values)
    categorical : str
        seaborn palette for other metadata levels
    """
    tumor: str = "#dc2626"          # Red-600
    normal: str = "#2563eb"         # Blue-600
    up: str = "#dc2626"
    down: str = "#2563eb"
    not_significant: str = "#9ca3af"  # Gray-400
    highlight: str = "#059669"      # Emerald-600
    diverging: str = "RdBu_r"
    sequential: str = "viridis"
    categorical: str = "Set2"

    @property
    def condition(self) -> dict[str, str]:
        """Colour mapping for condition labels."""
        return {
            "tumor": self.tumor, "Tumor": self.tumor, "Primary Tumor": self.tumor,
            "normal": self.normal, "Normal": self.normal, "Solid Tissue Normal": self.normal,
        }

    def for_groups(self, groups: Iterable) -> dict:
        """
        Colour per group label.

        Condition labels get their fixed colours; any other label draws from
        the categorical palette in order of first appearance.
        """
        known = self.condition
        fallback = sns.color_palette(self.categorical, 8).as_hex()
        colors = {}
        n_fallback = 0
        for group in dict.fromkeys(groups):
            if str(group) in known:
                colors[group] = known[str(group)]
            else:
                colors[group] = fallback[n_fallback % len(fallback)]
                n_fallback += 1
        return colors


PALETTES = {
    "default": Palette(),
    "colorblind": Palette(
        tumor="#cc3311",
        normal="#0077bb",
        up="#cc3311",
        down="#0077bb",
        not_significant="#bbbbbb",
        highlight="#009988",
        categorical="colorblind",
    ),
    "print": Palette(
        tumor="#1a1a1a",
        normal="#808080",
        up="#1a1a1a",
        down="#666666",
        not_significant="#d1d1d1",
        highlight="#000000",
        diverging="RdGy",
        sequential="Greys",
        categorical="Greys",
    ),
}


def configure_style(
    style: Literal["paper", "presentation", "notebook"] = "paper",
    palette: str | Palette = "default",
    font_scale: float = 1.0
) -> Palette:
    """
    Apply the shared seaborn theme and rcParams; return the palette.

    Parameters
    ----------
    style : {"paper", "presentation", "notebook"}
        paper: small fonts, 300 dpi. presentation: large fonts.
        notebook: moderate sizes for interactive use.
    palette : str or Palette
        Palette name from PALETTES or a Palette instance.
    font_scale : float
        Multiplier for all font sizes.
    """
    if isinstance(palette, str):
        if palette not in PALETTES:
            raise ValueError(f"Unknown palette '{palette}'; choose from {sorted(PALETTES)}")
        palette = PALETTES[palette]

    sizes = {
        "paper": (10, 300, "paper"),
        "presentation": (14, 150, "talk"),
        "notebook": (11, 100, "notebook"),
    }
    if style not in sizes:
        raise ValueError(f"Unknown style '{style}'; choose from {sorted(sizes)}")
    base_size, dpi, context = sizes[style]

    sns.set_theme(style="whitegrid", context=context, font_scale=font_scale)
    plt.rcParams.update({
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.spines.top": False,
        "axes.spines.right": False,
        "legend.frameon": False,
        "font.size": base_size * font_scale,
        "axes.titlesize": (base_size + 1) * font_scale,
        "axes.labelsize": base_size * font_scale,
        "figure.dpi": dpi,
        "savefig.dpi": dpi,
    })
    return palette


def format_pvalue(p: float, label: str = "p") -> str:
    """
    Format a p-value for annotations.

    Examples
    --------
    >>> format_pvalue(0.0004)
    'p < 0.001'
    >>> format_pvalue(0.0312, label="padj")
    'padj = 0.031'
    """
    if p != p:
        return f"{label} = NA"
    if p < 0.001:
        return f"{label} < 0.001"
    if p < 0.05:
        return f"{label} = {p:.3f}"
    return f"{label} = {p:.2f}"
