"""Project editor: Overview, Strategy, Technical, Timeline and Budget tabs."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGridLayout,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QPlainTextEdit,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)
from result import Err, Ok

from projdash.models.projects import ProjectDetails, ProjectStatus, ProjectUpdate
from projdash.models.strategy import AIDirectionalSignal, StrategyFit, StrategyInfo
from projdash.ui.async_bridge import async_slot
from projdash.ui.dialogs import UploadDocumentsDialog, confirm
from projdash.ui.theme import (
    COLORS,
    document_type_label,
    file_icon,
    format_currency,
    format_date,
    format_file_size,
    format_percent,
    format_relative_time,
    status_color,
)
from projdash.ui.widgets.chart_widget import AllocationPie, SpendingChart

if TYPE_CHECKING:
    from projdash.services.project_editor import ProjectEditor

TABS = ("Overview", "Strategy", "Technical", "Timeline", "Budget")


def _read_only_table(headers: list[str]) -> QTableWidget:
    table = QTableWidget(0, len(headers))
    table.setHorizontalHeaderLabels(headers)
    table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
    table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
    table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
    table.verticalHeader().setVisible(False)
    table.setShowGrid(False)
    table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
    table.horizontalHeader().setStretchLastSection(True)
    return table


class ProjectEditView(QWidget):
    """Editor for one project. Bound to a ``ProjectEditor`` via ``open_project``."""

    back_requested = Signal()
    project_changed = Signal(str)  # project_id
    error_raised = Signal(str)
    message = Signal(str)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._editor: ProjectEditor | None = None
        self._load_generation = 0

        layout = QVBoxLayout(self)
        layout.setContentsMargins(24, 16, 24, 12)
        layout.setSpacing(10)

        top = QHBoxLayout()
        back = QPushButton("‹ Back to projects")
        back.setFlat(True)
        back.clicked.connect(self.back_requested.emit)
        top.addWidget(back)
        top.addStretch()
        layout.addLayout(top)

        self._heading = QLabel()
        self._heading.setProperty("heading", True)
        layout.addWidget(self._heading)
        self._subheading = QLabel()
        self._subheading.setProperty("muted", True)
        layout.addWidget(self._subheading)

        self._tabs = QTabWidget()
        self._tabs.addTab(self._build_overview(), TABS[0])
        self._tabs.addTab(self._build_strategy(), TABS[1])
        self._tabs.addTab(self._build_technical(), TABS[2])
        self._tabs.addTab(self._build_timeline(), TABS[3])
        self._tabs.addTab(self._build_budget(), TABS[4])
        layout.addWidget(self._tabs, stretch=1)

    # ── Tab construction ──

    def _build_overview(self) -> QWidget:
        page = QWidget()
        form = QFormLayout(page)
        self._title_input = QLineEdit()
        form.addRow("Title", self._title_input)
        self._summary_input = QPlainTextEdit()
        self._summary_input.setFixedHeight(100)
        form.addRow("Summary", self._summary_input)
        self._url_input = QLineEdit()
        form.addRow("Project URL", self._url_input)
        self._status_combo = QComboBox()
        for status in ProjectStatus:
            self._status_combo.addItem(status.value, status)
        form.addRow("Status", self._status_combo)
        self._creator_label = QLabel()
        form.addRow("Creator", self._creator_label)
        self._created_label = QLabel()
        form.addRow("Created", self._created_label)
        self._files_label = QLabel()
        form.addRow("Documents", self._files_label)
        save = QPushButton("Save Changes")
        save.setProperty("primary", True)
        save.clicked.connect(self._on_save_overview)
        form.addRow("", save)
        return page

    def _build_strategy(self) -> QWidget:
        page = QWidget()
        form = QFormLayout(page)
        self._fit_combo = QComboBox()
        for fit in StrategyFit:
            self._fit_combo.addItem(fit.value, fit)
        form.addRow("Strategy fit", self._fit_combo)
        self._strategy_inputs: dict[str, QPlainTextEdit] = {}
        for field, label in (
            ("demand_urgency", "Demand urgency"),
            ("bottleneck", "Bottleneck"),
            ("product_and_edge", "Product and edge"),
            ("trl", "Technology readiness (TRL)"),
            ("resources", "Resources"),
            ("supporting_materials_present", "Supporting materials"),
            ("information_completeness_note", "Completeness note"),
        ):
            editor = QPlainTextEdit()
            editor.setFixedHeight(54)
            self._strategy_inputs[field] = editor
            form.addRow(label, editor)
        self._signal_combo = QComboBox()
        for signal in AIDirectionalSignal:
            self._signal_combo.addItem(signal.value.replace("_", " ").title(), signal)
        form.addRow("Directional signal", self._signal_combo)
        save = QPushButton("Save Strategy")
        save.setProperty("primary", True)
        save.clicked.connect(self._on_save_strategy)
        form.addRow("", save)
        return page

    def _build_technical(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        actions = QHBoxLayout()
        upload = QPushButton("Upload Documents")
        upload.setProperty("primary", True)
        upload.clicked.connect(self._on_upload)
        download = QPushButton("Download")
        download.clicked.connect(self._on_download)
        delete = QPushButton("Delete")
        delete.setProperty("danger", True)
        delete.clicked.connect(self._on_delete_file)
        actions.addWidget(upload)
        actions.addStretch()
        actions.addWidget(download)
        actions.addWidget(delete)
        layout.addLayout(actions)
        self._files_table = _read_only_table(
            ["", "File Name", "Type", "Category", "Uploaded By", "Modified", "Size"]
        )
        layout.addWidget(self._files_table)
        return page

    def _build_timeline(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        self._milestones_table = _read_only_table(["Date", "Milestone", "Status", "Description"])
        layout.addWidget(self._milestones_table)
        return page

    def _build_budget(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        cards = QGridLayout()
        self._budget_labels: dict[str, QLabel] = {}
        for column, (key, caption) in enumerate(
            (
                ("total", "Total Budget"),
                ("spent", "Total Spent"),
                ("committed", "Committed"),
                ("remaining", "Remaining"),
            )
        ):
            title = QLabel(caption)
            title.setProperty("muted", True)
            value = QLabel("-")
            value.setStyleSheet("font-size: 18px; font-weight: bold;")
            cards.addWidget(title, 0, column)
            cards.addWidget(value, 1, column)
            self._budget_labels[key] = value
        layout.addLayout(cards)

        charts = QHBoxLayout()
        self._spending_chart = SpendingChart()
        self._allocation_chart = AllocationPie(width=3.5)
        charts.addWidget(self._spending_chart, stretch=3)
        charts.addWidget(self._allocation_chart, stretch=2)
        layout.addLayout(charts, stretch=1)

        self._transactions_table = _read_only_table(
            ["Date", "Description", "Category", "Amount", "Status"]
        )
        layout.addWidget(self._transactions_table, stretch=1)
        return page

    # ── Loading and rendering ──

    @async_slot
    async def open_project(self, editor: ProjectEditor) -> None:
        """Show ``editor``'s project; stale loads from earlier calls are ignored."""
        self._editor = editor
        self._load_generation += 1
        generation = self._load_generation
        self._heading.setText("Loading…")
        self._subheading.clear()
        self._tabs.setCurrentIndex(0)
        result = await editor.load()
        if generation != self._load_generation:
            return
        if isinstance(result, Err):
            self._heading.setText("Project unavailable")
            self.error_raised.emit(result.err_value.user_message)
            return
        self._render(result.ok_value)

    def _render(self, details: ProjectDetails) -> None:
        project = details.project
        self._heading.setText(project.title)
        self._subheading.setText(f"{project.project_no}  ·  {project.status.value}")
        self._subheading.setStyleSheet(f"color: {status_color(project.status)};")

        self._title_input.setText(project.title)
        self._summary_input.setPlainText(project.description)
        self._url_input.setText(project.project_url)
        self._status_combo.setCurrentIndex(self._status_combo.findData(project.status))
        self._creator_label.setText(project.creator_name or "Unknown")
        self._created_label.setText(format_date(project.created_at))
        self._files_label.setText(str(project.files_count))

        self._render_strategy(details.strategy or StrategyInfo())
        self._render_files(details)
        self._render_timeline(details)
        self._render_budget(details)

    def _render_strategy(self, info: StrategyInfo) -> None:
        self._fit_combo.setCurrentIndex(self._fit_combo.findData(info.strategy_fit))
        for field, editor in self._strategy_inputs.items():
            editor.setPlainText(str(getattr(info, field)))
        self._signal_combo.setCurrentIndex(
            self._signal_combo.findData(info.ai_directional_signal)
        )

    def _render_files(self, details: ProjectDetails) -> None:
        table = self._files_table
        table.setRowCount(len(details.files))
        for row, record in enumerate(details.files):
            glyph, color = file_icon(record.file_type)
            icon_item = QTableWidgetItem(glyph)
            icon_item.setForeground(QColor(color))
            icon_item.setData(Qt.ItemDataRole.UserRole, record.id)
            table.setItem(row, 0, icon_item)
            table.setItem(row, 1, QTableWidgetItem(record.file_name))
            table.setItem(row, 2, QTableWidgetItem(document_type_label(record.file_type)))
            table.setItem(row, 3, QTableWidgetItem(record.document_category.value))
            table.setItem(row, 4, QTableWidgetItem(record.uploaded_by_name or "-"))
            table.setItem(row, 5, QTableWidgetItem(format_relative_time(record.created_at)))
            table.setItem(row, 6, QTableWidgetItem(format_file_size(record.file_size)))

    def _render_timeline(self, details: ProjectDetails) -> None:
        table = self._milestones_table
        table.setRowCount(len(details.milestones))
        for row, milestone in enumerate(details.milestones):
            table.setItem(row, 0, QTableWidgetItem(format_date(milestone.date)))
            table.setItem(row, 1, QTableWidgetItem(milestone.title))
            status_item = QTableWidgetItem(milestone.status)
            status_item.setForeground(QColor(status_color(milestone.status)))
            table.setItem(row, 2, status_item)
            table.setItem(row, 3, QTableWidgetItem(milestone.description))

    def _render_budget(self, details: ProjectDetails) -> None:
        budget = details.budget
        self._budget_labels["total"].setText(format_currency(budget.total_budget))
        self._budget_labels["spent"].setText(
            f"{format_currency(budget.spent)}  ({format_percent(budget.utilization)})"
        )
        self._budget_labels["committed"].setText(format_currency(budget.committed))
        remaining = self._budget_labels["remaining"]
        remaining.setText(format_currency(budget.remaining))
        remaining.setStyleSheet(
            "font-size: 18px; font-weight: bold; "
            f"color: {COLORS['error'] if budget.remaining < 0 else COLORS['text']};"
        )
        self._spending_chart.set_data(budget)
        self._allocation_chart.set_data(budget)

        table = self._transactions_table
        table.setRowCount(len(budget.transactions))
        for row, tx in enumerate(budget.transactions):
            table.setItem(row, 0, QTableWidgetItem(format_date(tx.date)))
            table.setItem(row, 1, QTableWidgetItem(tx.description))
            table.setItem(row, 2, QTableWidgetItem(tx.category))
            table.setItem(row, 3, QTableWidgetItem(format_currency(tx.amount)))
            table.setItem(row, 4, QTableWidgetItem(tx.status.value))

    def _refresh_from_editor(self) -> None:
        if self._editor is not None and self._editor.details is not None:
            self._render(self._editor.details)

    def _selected_file_id(self) -> str | None:
        row = self._files_table.currentRow()
        item = self._files_table.item(row, 0) if row >= 0 else None
        return item.data(Qt.ItemDataRole.UserRole) if item is not None else None

    # ── Actions ──

    @async_slot
    async def _on_save_overview(self) -> None:
        if self._editor is None:
            return
        changes = ProjectUpdate(
            title=self._title_input.text().strip(),
            summary=self._summary_input.toPlainText().strip(),
            project_url=self._url_input.text().strip(),
            status=self._status_combo.currentData(),
        )
        result = await self._editor.save_overview(changes)
        if isinstance(result, Err):
            self.error_raised.emit(result.err_value.user_message)
            return
        self._refresh_from_editor()
        self.message.emit("Project saved.")
        self.project_changed.emit(self._editor.project_id)

    @async_slot
    async def _on_save_strategy(self) -> None:
        if self._editor is None:
            return
        values = {
            field: editor.toPlainText().strip() for field, editor in self._strategy_inputs.items()
        }
        info = StrategyInfo(
            strategy_fit=self._fit_combo.currentData(),
            ai_directional_signal=self._signal_combo.currentData(),
            **values,
        )
        result = await self._editor.save_strategy(info)
        if isinstance(result, Err):
            self.error_raised.emit(result.err_value.user_message)
            return
        self.message.emit("Strategy saved.")

    @async_slot
    async def _on_upload(self) -> None:
        if self._editor is None:
            return
        dialog = UploadDocumentsDialog(self)
        if not dialog.exec() or not dialog.paths():
            return
        result = await self._editor.upload_files(dialog.paths(), dialog.category())
        self._refresh_from_editor()
        if isinstance(result, Err):
            self.error_raised.emit(result.err_value.user_message)
        else:
            self.message.emit(f"Uploaded {len(result.ok_value)} document(s).")
        self.project_changed.emit(self._editor.project_id)

    @async_slot
    async def _on_download(self) -> None:
        file_id = self._selected_file_id()
        if self._editor is None or file_id is None:
            return
        directory = QFileDialog.getExistingDirectory(self, "Save document to")
        if not directory:
            return
        result = await self._editor.download_file(file_id, Path(directory))
        if isinstance(result, Ok):
            self.message.emit(f"Saved {result.ok_value.name}")
        else:
            self.error_raised.emit(result.err_value.user_message)

    @async_slot
    async def _on_delete_file(self) -> None:
        file_id = self._selected_file_id()
        if self._editor is None or file_id is None:
            return
        if not confirm(self, "Delete document", "Delete the selected document?"):
            return
        result = await self._editor.delete_file(file_id)
        if isinstance(result, Err):
            self.error_raised.emit(result.err_value.user_message)
            return
        self._refresh_from_editor()
        self.project_changed.emit(self._editor.project_id)
