"""
Exploratory and result figures for the expression pipeline.

Each plot answers one question of the workshop narrative:

    plot_pca / plot_pca_3d: Do tumours and normals separate on the main axes
        of variation?
    plot_scree: How much variation do the leading components capture?
    plot_feature_scatter: How do two genes co-vary across samples?
    plot_heatmap: Do the most variable genes cluster samples by condition?
    plot_volcano: Which genes change, in which direction, how confidently?
    plot_enrichment: Which pathways are concentrated at the extremes of the
        ranked gene list?

Empty inputs (a filter that matched nothing, a PCA on one sample) render a
labelled placeholder instead of raising, so a run always produces its report.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional, Sequence

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.colors import Normalize

from geneflow.core.biomatrix import BioMatrix
from geneflow.stats.differential import ContrastResult
from geneflow.stats.pca import PCAResult
from geneflow.viz.core import Figure
from geneflow.viz.styles import Palette, PALETTES, configure_style

logger = logging.getLogger(__name__)

__all__ = ['ExpressionVisualizer']


def _placeholder(title: str, message: str, figsize: tuple[float, float] = (6, 4)) -> Figure:
    fig, ax = plt.subplots(figsize=figsize)
    ax.text(0.5, 0.5, message, ha='center', va='center', fontsize=11, color='#6b7280',
            transform=ax.transAxes)
    ax.set_axis_off()
    ax.set_title(title)
    return Figure(fig=fig, title=title, description=message, figure_type="matplotlib",
                  metadata={"empty": True})


def _axis_label(pca: PCAResult, component: str) -> str:
    return f"{component} ({pca.explained_variance_ratio[component]:.1%} variance)"


class ExpressionVisualizer:
    """
    Figures for PCA, expression patterns, differential expression and GSEA.

    Examples:
        >>> viz = ExpressionVisualizer()
        >>> viz.plot_pca(pca_result, color_by="condition").save("pca.png")
        >>> viz.plot_volcano(de_result["tumor_vs_normal"], id_column="gene_name")
    """

    def __init__(
        self,
        palette: str | Palette = "default",
        style: Literal["paper", "presentation", "notebook"] = "paper"
    ):
        self.palette = configure_style(style=style, palette=palette)
        self.style = style

    def _group_colors(self, labels: pd.Series) -> tuple[pd.Series, dict]:
        labels = labels.astype(object).where(labels.notna(), "NA")
        mapping = self.palette.for_groups(labels)
        return labels, mapping

    # =========================================================================
    # DIMENSIONALITY REDUCTION
    # =========================================================================

    def plot_pca(
        self,
        pca: PCAResult,
        color_by: Optional[str] = None,
        components: tuple[str, str] = ("PC1", "PC2"),
        label_by: Optional[str] = None,
        figsize: tuple[float, float] = (7, 6)
    ) -> Figure:
        """
        Scatter of samples on two principal components.

        Args:
            pca: Result of run_pca
            color_by: Sample annotation column used for colour
            components: Components on the x and y axes
            label_by: Sample annotation column used to label points
                (use "index" for sample ids)
        """
        title = f"PCA: {components[0]} vs {components[1]}"
        if pca.is_empty:
            return _placeholder(title, "PCA needs at least 2 samples and 1 feature")
        missing = [c for c in components if c not in pca.scores.columns]
        if missing:
            raise ValueError(f"Components {missing} not computed; available: {pca.components}")

        frame = pca.to_dataframe()
        x, y = components
        fig, ax = plt.subplots(figsize=figsize)

        if color_by is not None:
            if color_by not in frame.columns:
                raise KeyError(f"Column '{color_by}' not found in sample metadata")
            labels, mapping = self._group_colors(frame[color_by])
            for group, color in mapping.items():
                mask = (labels == group).to_numpy()
                ax.scatter(frame.loc[mask, x], frame.loc[mask, y], s=40, alpha=0.8,
                           c=color, edgecolors='white', linewidths=0.5,
                           label=f"{group} (n={int(mask.sum())})")
            ax.legend(title=color_by, loc='best', fontsize=8)
        else:
            ax.scatter(frame[x], frame[y], s=40, alpha=0.8, c=self.palette.highlight,
                       edgecolors='white', linewidths=0.5)

        if label_by is not None:
            names = frame.index if label_by == "index" else frame[label_by]
            for name, xv, yv in zip(names, frame[x], frame[y]):
                ax.annotate(str(name), (xv, yv), fontsize=7, xytext=(3, 3), textcoords='offset points')

        ax.axhline(0, color='#d1d5db', linewidth=0.8, zorder=0)
        ax.axvline(0, color='#d1d5db', linewidth=0.8, zorder=0)
        ax.set_xlabel(_axis_label(pca, x))
        ax.set_ylabel(_axis_label(pca, y))
        ax.set_title(title)

        ratio = pca.explained_variance_ratio[[x, y]].sum()
        return Figure(
            fig=fig,
            title=title,
            description=(
                f"{len(frame)} samples projected on {x} and {y}, together explaining "
                f"{ratio:.1%} of variance" + (f"; coloured by {color_by}." if color_by else ".")
            ),
            figure_type="matplotlib",
            metadata={"components": list(components), "color_by": color_by},
        )

    def plot_pca_3d(
        self,
        pca: PCAResult,
        color_by: Optional[str] = None,
        components: tuple[str, str, str] = ("PC1", "PC2", "PC3"),
        interactive: bool = True,
        figsize: tuple[float, float] = (8, 7)
    ) -> Figure:
        """
        Three-component sample scatter.

        interactive=True draws a rotatable plotly figure; interactive=False
        a static matplotlib 3-D projection.
        """
        title = "PCA: " + " / ".join(components)
        if pca.is_empty:
            return _placeholder(title, "PCA needs at least 2 samples and 1 feature")
        missing = [c for c in components if c not in pca.scores.columns]
        if missing:
            raise ValueError(
                f"3-D PCA needs components {list(components)}; only {pca.components} were computed"
            )

        frame = pca.to_dataframe()
        if color_by is not None and color_by not in frame.columns:
            raise KeyError(f"Column '{color_by}' not found in sample metadata")
        labels, mapping = self._group_colors(
            frame[color_by] if color_by else pd.Series("samples", index=frame.index)
        )
        x, y, z = components
        description = f"{len(frame)} samples on {x}, {y} and {z}" + (f", coloured by {color_by}." if color_by else ".")
        metadata = {"components": list(components), "color_by": color_by, "interactive": interactive}

        if interactive:
            import plotly.graph_objects as go

            fig = go.Figure()
            for group, color in mapping.items():
                mask = (labels == group).to_numpy()
                fig.add_trace(go.Scatter3d(
                    x=frame.loc[mask, x], y=frame.loc[mask, y], z=frame.loc[mask, z],
                    mode='markers',
                    name=str(group),
                    text=frame.index[mask].astype(str),
                    marker=dict(size=4, color=color, opacity=0.85),
                ))
            fig.update_layout(
                title=title,
                scene=dict(
                    xaxis_title=_axis_label(pca, x),
                    yaxis_title=_axis_label(pca, y),
                    zaxis_title=_axis_label(pca, z),
                ),
                legend_title_text=color_by or "",
                margin=dict(l=0, r=0, t=40, b=0),
            )
            return Figure(fig=fig, title=title, description=description, figure_type="plotly",
                          metadata=metadata)

        fig = plt.figure(figsize=figsize)
        ax = fig.add_subplot(projection='3d')
        for group, color in mapping.items():
            mask = (labels == group).to_numpy()
            ax.scatter(frame.loc[mask, x], frame.loc[mask, y], frame.loc[mask, z],
                       c=color, s=25, alpha=0.85, label=str(group))
        ax.set_xlabel(_axis_label(pca, x), fontsize=8)
        ax.set_ylabel(_axis_label(pca, y), fontsize=8)
        ax.set_zlabel(_axis_label(pca, z), fontsize=8)
        ax.set_title(title)
        if color_by:
            ax.legend(title=color_by, fontsize=8)
        return Figure(fig=fig, title=title, description=description, figure_type="matplotlib",
                      metadata=metadata)

    def plot_scree(
        self,
        pca: PCAResult,
        n_components: Optional[int] = None,
        figsize: tuple[float, float] = (7, 4)
    ) -> Figure:
        """Variance explained per component with the cumulative curve."""
        title = "Variance explained"
        if pca.is_empty:
            return _placeholder(title, "No principal components were computed")

        table = pca.variance_table()
        if n_components is not None:
            table = table.head(n_components)

        fig, ax = plt.subplots(figsize=figsize)
        positions = np.arange(len(table))
        ax.bar(positions, table['variance_ratio'] * 100, color=self.palette.normal, alpha=0.85)
        ax.plot(positions, table['cumulative_ratio'] * 100, color=self.palette.tumor,
                marker='o', markersize=3, linewidth=1.2, label='Cumulative')
        ax.set_xticks(positions)
        ax.set_xticklabels(table['component'], rotation=90 if len(table) > 12 else 0, fontsize=8)
        ax.set_ylabel("Variance explained (%)")
        ax.set_ylim(0, 105)
        ax.set_title(title)
        ax.legend(loc='center right')

        return Figure(
            fig=fig,
            title=title,
            description=(
                f"PC1 explains {table['variance_ratio'].iloc[0]:.1%} of variance; the first "
                f"{len(table)} components explain {table['cumulative_ratio'].iloc[-1]:.1%}."
            ),
            figure_type="matplotlib",
            metadata={"n_components": len(table)},
        )

    # =========================================================================
    # EXPRESSION PATTERNS
    # =========================================================================

    def _feature_index(self, matrix: BioMatrix, feature: str, id_column: Optional[str]) -> int:
        if id_column is None:
            matches = np.flatnonzero(matrix.feature_ids == feature)
        else:
            if id_column not in matrix.feature_metadata.columns:
                raise KeyError(f"Column '{id_column}' not found in feature metadata")
            matches = np.flatnonzero(matrix.feature_metadata[id_column].astype(str).to_numpy() == feature)
        if len(matches) == 0:
            raise KeyError(f"Feature '{feature}' not found")
        if len(matches) > 1:
            logger.warning(f"'{feature}' matches {len(matches)} features; using the first")
        return int(matches[0])

    def plot_feature_scatter(
        self,
        matrix: BioMatrix,
        feature_x: str,
        feature_y: str,
        color_by: Optional[str] = None,
        id_column: Optional[str] = None,
        figsize: tuple[float, float] = (6, 6)
    ) -> Figure:
        """
        Expression of one feature against another across samples.

        Args:
            matrix: Usually the log-transformed matrix
            feature_x, feature_y: Feature ids, or values of ``id_column``
                (e.g. gene symbols) when given
            color_by: Sample annotation column used for colour
        """
        title = f"{feature_x} vs {feature_y}"
        if matrix.n_samples == 0:
            return _placeholder(title, "No samples to plot")

        xi = self._feature_index(matrix, feature_x, id_column)
        yi = self._feature_index(matrix, feature_y, id_column)
        xs, ys = matrix.data[xi], matrix.data[yi]

        fig, ax = plt.subplots(figsize=figsize)
        if color_by is not None:
            labels, mapping = self._group_colors(matrix.sample_metadata[color_by])
            for group, color in mapping.items():
                mask = (labels == group).to_numpy()
                ax.scatter(xs[mask], ys[mask], c=color, s=30, alpha=0.8, label=str(group),
                           edgecolors='white', linewidths=0.4)
            ax.legend(title=color_by, fontsize=8)
        else:
            ax.scatter(xs, ys, c=self.palette.highlight, s=30, alpha=0.8,
                       edgecolors='white', linewidths=0.4)

        ax.set_xlabel(feature_x)
        ax.set_ylabel(feature_y)
        ax.set_title(title)

        valid = ~(np.isnan(xs) | np.isnan(ys))
        r = np.nan
        if valid.sum() > 2 and np.ptp(xs[valid]) > 0 and np.ptp(ys[valid]) > 0:
            r = float(np.corrcoef(xs[valid], ys[valid])[0, 1])
        return Figure(
            fig=fig,
            title=title,
            description=f"Expression across {matrix.n_samples} samples (Pearson r = {r:.2f}).",
            figure_type="matplotlib",
            metadata={"feature_x": feature_x, "feature_y": feature_y, "pearson_r": float(r)},
        )

    def plot_heatmap(
        self,
        matrix: BioMatrix,
        annotate_by: Optional[str] = None,
        row_label_column: Optional[str] = None,
        cluster: bool = True,
        figsize: tuple[float, float] = (10, 10)
    ) -> Figure:
        """
        Clustered heatmap of row-centered expression.

        Each feature is centered on its mean across samples so colour shows
        relative expression. Pass a HighVarianceSelector-reduced matrix; the
        dendrograms are only drawn when there are at least two rows/columns.

        Args:
            matrix: Features × samples (typically log expression)
            annotate_by: Sample annotation column drawn as a colour bar
            row_label_column: Feature annotation used for row labels (e.g. gene_name)
            cluster: Hierarchically cluster rows and columns
        """
        title = f"Expression heatmap ({matrix.n_features} features)"
        if matrix.is_empty:
            return _placeholder(title, "No features or samples to plot")

        frame = matrix.to_dataframe()
        frame = frame.sub(frame.mean(axis=1), axis=0)
        if row_label_column is not None:
            frame.index = matrix.feature_metadata[row_label_column].astype(str).to_numpy()
        frame.columns = frame.columns.astype(str)

        col_colors = None
        mapping = {}
        if annotate_by is not None:
            labels, mapping = self._group_colors(matrix.sample_metadata[annotate_by])
            col_colors = pd.Series(labels.map(mapping).to_numpy(), index=frame.columns, name=annotate_by)

        limit = float(np.nanmax(np.abs(frame.to_numpy()))) or 1.0
        grid = sns.clustermap(
            frame,
            row_cluster=cluster and matrix.n_features > 1,
            col_cluster=cluster and matrix.n_samples > 1,
            col_colors=col_colors,
            cmap=self.palette.diverging,
            center=0,
            vmin=-limit,
            vmax=limit,
            figsize=figsize,
            yticklabels=matrix.n_features <= 60,
            xticklabels=matrix.n_samples <= 60,
            cbar_kws={"label": "Centered expression"},
        )
        if mapping:
            handles = [mpatches.Patch(color=c, label=str(g)) for g, c in mapping.items()]
            grid.ax_heatmap.legend(handles=handles, title=annotate_by, loc='upper left',
                                   bbox_to_anchor=(1.02, 1.15), fontsize=8)
        grid.figure.suptitle(title, y=1.02)

        return Figure(
            fig=grid.figure,
            title=title,
            description=(
                f"Row-centered expression of {matrix.n_features} features across "
                f"{matrix.n_samples} samples" + (f", annotated by {annotate_by}." if annotate_by else ".")
            ),
            figure_type="matplotlib",
            metadata={"annotate_by": annotate_by, "clustered": cluster},
        )

    # =========================================================================
    # DIFFERENTIAL EXPRESSION & ENRICHMENT
    # =========================================================================

    def plot_volcano(
        self,
        contrast: ContrastResult,
        id_column: Optional[str] = None,
        label_top: int = 10,
        figsize: tuple[float, float] = (7, 6)
    ) -> Figure:
        """
        log2 fold change against -log10 p-value, coloured by significance.

        Args:
            contrast: One differential expression contrast
            id_column: Feature annotation used to label the top features
            label_top: Number of most significant features to label
        """
        title = f"Volcano: {contrast.name}"
        table = contrast.table.dropna(subset=['log2FoldChange', 'pvalue'])
        if table.empty:
            return _placeholder(title, "No tested features")

        neglog = -np.log10(table['pvalue'].clip(lower=np.finfo(float).tiny))
        up = table['significant'] & (table['log2FoldChange'] > 0)
        down = table['significant'] & (table['log2FoldChange'] < 0)
        rest = ~(up | down)

        fig, ax = plt.subplots(figsize=figsize)
        ax.scatter(table.loc[rest, 'log2FoldChange'], neglog[rest], s=8, alpha=0.5,
                   c=self.palette.not_significant, edgecolors='none',
                   label=f"Not significant (n={int(rest.sum()):,})")
        ax.scatter(table.loc[up, 'log2FoldChange'], neglog[up], s=10, alpha=0.8,
                   c=self.palette.up, edgecolors='none', label=f"Up (n={int(up.sum()):,})")
        ax.scatter(table.loc[down, 'log2FoldChange'], neglog[down], s=10, alpha=0.8,
                   c=self.palette.down, edgecolors='none', label=f"Down (n={int(down.sum()):,})")

        if label_top > 0:
            top = table[table['significant']].sort_values('padj', kind='stable').head(label_top)
            names = [str(f) for f in top.index]
            if id_column is not None and id_column in contrast.feature_metadata.columns:
                symbols = contrast.feature_metadata[id_column].reindex(top.index)
                names = [str(s) if pd.notna(s) else str(f) for f, s in symbols.items()]
            for name, fc, p in zip(names, top['log2FoldChange'], neglog[top.index]):
                ax.annotate(name, (fc, p), fontsize=7, xytext=(3, 3), textcoords='offset points')

        ax.axvline(0, color='#d1d5db', linewidth=0.8, zorder=0)
        ax.set_xlabel(f"log2 fold change ({contrast.test_level} / {contrast.reference_level})")
        ax.set_ylabel("-log10 p-value")
        ax.set_title(title)
        ax.legend(loc='upper left', fontsize=8)

        return Figure(
            fig=fig,
            title=title,
            description=(
                f"{int(up.sum())} up- and {int(down.sum())} down-regulated features at "
                f"padj < {contrast.alpha} out of {len(table)} tested."
            ),
            figure_type="matplotlib",
            metadata={"contrast": contrast.name, "alpha": contrast.alpha},
        )

    def plot_enrichment(
        self,
        table: pd.DataFrame,
        top_n: int = 20,
        title: str = "Gene set enrichment",
        figsize: Optional[tuple[float, float]] = None
    ) -> Figure:
        """
        Horizontal bars of NES for the most significant gene sets.

        Bars are coloured by adjusted p-value. Gene sets outside the size
        bounds (defined == False) are not drawn.
        """
        defined = table[table['defined']] if 'defined' in table.columns else table
        defined = defined.dropna(subset=['nes'])
        if defined.empty:
            return _placeholder(title, "No gene set was tested")

        shown = defined.sort_values(['pvalue', 'pathway'], kind='stable').head(top_n)
        shown = shown.sort_values('nes', kind='stable')

        height = figsize[1] if figsize else max(3.0, 0.3 * len(shown) + 1.5)
        fig, ax = plt.subplots(figsize=(figsize[0] if figsize else 8, height))

        cmap = plt.get_cmap(self.palette.sequential)
        norm = Normalize(vmin=0, vmax=max(float(shown['padj'].max()), 0.05))
        ax.barh(np.arange(len(shown)), shown['nes'], color=cmap(norm(shown['padj'].fillna(1.0))))
        ax.set_yticks(np.arange(len(shown)))
        ax.set_yticklabels(shown['pathway'], fontsize=8)
        ax.axvline(0, color='#333333', linewidth=0.8)
        ax.set_xlabel("Normalized enrichment score")
        ax.set_title(title)

        sm = plt.cm.ScalarMappable(cmap=cmap, norm=norm)
        sm.set_array([])
        fig.colorbar(sm, ax=ax, label="Adjusted p-value")

        n_sig = int((defined['padj'] < 0.05).sum())
        return Figure(
            fig=fig,
            title=title,
            description=f"{n_sig} of {len(defined)} tested gene sets have padj < 0.05; top {len(shown)} shown.",
            figure_type="matplotlib",
            metadata={"top_n": top_n},
        )

    def plot_all(
        self,
        pca: Optional[PCAResult] = None,
        color_by: Optional[str] = None,
        contrasts: Sequence[ContrastResult] = (),
        enrichment: Optional[dict[str, pd.DataFrame]] = None,
        heatmap_matrix: Optional[BioMatrix] = None,
        id_column: Optional[str] = None,
        interactive_3d: bool = True,
    ):
        """
        Build the standard figure set of a pipeline run.

        Returns:
            FigureCollection keyed by figure name
        """
        from geneflow.viz.core import FigureCollection

        figures = FigureCollection()
        if pca is not None:
            if pca.is_empty or pca.n_components >= 2:
                figures.add("pca", self.plot_pca(pca, color_by=color_by))
            else:
                figures.add("pca", _placeholder(
                    "PCA: PC1 vs PC2",
                    f"Only {pca.n_components} component computed; a 2-D scatter needs two",
                ))
            figures.add("scree", self.plot_scree(pca))
            if pca.n_components >= 3:
                figures.add("pca_3d", self.plot_pca_3d(pca, color_by=color_by, interactive=interactive_3d))
        if heatmap_matrix is not None:
            figures.add("heatmap", self.plot_heatmap(heatmap_matrix, annotate_by=color_by,
                                                     row_label_column=id_column))
        for contrast in contrasts:
            figures.add(f"volcano_{contrast.name}", self.plot_volcano(contrast, id_column=id_column))
        for name, table in (enrichment or {}).items():
            figures.add(f"enrichment_{name}", self.plot_enrichment(table, title=f"Gene set enrichment: {name}"))
        return figures
