"""
Visualization for the expression pipeline.

Components:
    Figure / FigureCollection: matplotlib/plotly wrapper, batch saving, HTML report
    ExpressionVisualizer: PCA, scree, feature scatter, heatmap, volcano, enrichment
    Palette / configure_style: shared colours and matplotlib settings

Examples:
    >>> from geneflow.viz import ExpressionVisualizer
    >>> viz = ExpressionVisualizer(style="notebook")
    >>> viz.plot_pca(pca_result, color_by="condition").show()
"""

from geneflow.viz.core import Figure, FigureCollection
from geneflow.viz.expression import ExpressionVisualizer
from geneflow.viz.styles import Palette, PALETTES, configure_style, format_pvalue

__all__ = [
    'Figure',
    'FigureCollection',
    'ExpressionVisualizer',
    'Palette',
    'PALETTES',
    'configure_style',
    'format_pvalue',
]
