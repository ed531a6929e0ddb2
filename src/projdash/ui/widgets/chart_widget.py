"""Matplotlib budget charts embedded in the Budget tab."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from matplotlib.backends.backend_qtagg import FigureCanvasQTAgg
from matplotlib.figure import Figure

from projdash.ui.theme import CHART_COLORS, COLORS, format_currency

if TYPE_CHECKING:
    from projdash.models.budget import BudgetSummary


def month_label(key: str) -> str:
    """``2023-10`` -> ``Oct 23``; unknown keys pass through."""
    try:
        return datetime.strptime(key, "%Y-%m").strftime("%b %y")
    except ValueError:
        return key


class ChartCanvas(FigureCanvasQTAgg):
    """Base class for an embedded matplotlib chart."""

    empty_text = "No data"

    def __init__(self, width: float = 5, height: float = 3, dpi: int = 100) -> None:
        self.fig = Figure(figsize=(width, height), dpi=dpi, facecolor=COLORS["bg"])
        super().__init__(self.fig)
        self.ax = self.fig.add_subplot(111)
        self._style_axes()

    def _style_axes(self) -> None:
        self.ax.set_facecolor(COLORS["bg"])
        self.ax.tick_params(colors=COLORS["text_muted"], labelsize=8)
        for name, spine in self.ax.spines.items():
            spine.set_visible(name == "bottom")
            spine.set_color(COLORS["border"])

    def _reset(self) -> None:
        self.ax.clear()
        self._style_axes()

    def _show_empty(self) -> None:
        self.ax.set_xticks([])
        self.ax.set_yticks([])
        self.ax.text(
            0.5,
            0.5,
            self.empty_text,
            ha="center",
            va="center",
            color=COLORS["text_muted"],
            fontsize=11,
            transform=self.ax.transAxes,
        )
        self.draw()


class SpendingChart(ChartCanvas):
    """Paid and pending spend per month, side by side."""

    empty_text = "No transactions yet"

    def set_data(self, summary: BudgetSummary) -> None:
        self._reset()
        if not summary.monthly:
            self._show_empty()
            return

        months = list(summary.monthly)
        paid = [summary.monthly[m].get("Paid", 0.0) for m in months]
        pending = [summary.monthly[m].get("Pending", 0.0) for m in months]
        positions = range(len(months))
        width = 0.38

        self.ax.bar(
            [p - width / 2 for p in positions], paid, width, label="Paid", color=CHART_COLORS[0]
        )
        self.ax.bar(
            [p + width / 2 for p in positions],
            pending,
            width,
            label="Pending",
            color=COLORS["border"],
        )
        self.ax.set_xticks(list(positions))
        self.ax.set_xticklabels([month_label(m) for m in months])
        self.ax.yaxis.grid(True, linestyle="--", color=COLORS["border"])
        self.ax.set_axisbelow(True)
        self.ax.legend(fontsize=8, frameon=False)
        self.fig.tight_layout()
        self.draw()


class AllocationPie(ChartCanvas):
    """Donut of spend per category with the total in the middle."""

    empty_text = "No allocation data"

    def set_data(self, summary: BudgetSummary) -> None:
        self._reset()
        allocation = {k: v for k, v in summary.allocation.items() if v > 0}
        if not allocation:
            self._show_empty()
            return

        labels = list(allocation)
        values = list(allocation.values())
        colors = [CHART_COLORS[i % len(CHART_COLORS)] for i in range(len(labels))]
        self.ax.pie(
            values,
            labels=labels,
            colors=colors,
            autopct="%1.0f%%",
            pctdistance=0.78,
            startangle=90,
            wedgeprops={"width": 0.35, "edgecolor": COLORS["bg"]},
            textprops={"fontsize": 8, "color": COLORS["text"]},
        )
        self.ax.text(
            0,
            0,
            f"Total\n{format_currency(sum(values))}",
            ha="center",
            va="center",
            fontsize=9,
            color=COLORS["text"],
        )
        self.ax.set_aspect("equal")
        self.fig.tight_layout()
        self.draw()
