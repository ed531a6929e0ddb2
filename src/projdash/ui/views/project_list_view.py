"""Project list view: filter bar, project table and pager bound to a ListSyncController."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from PySide6.QtCore import (
    QAbstractTableModel,
    QModelIndex,
    QPersistentModelIndex,
    Qt,
    Signal,
)
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QPushButton,
    QTableView,
    QVBoxLayout,
    QWidget,
)

from projdash.models.projects import ProjectFilters, ProjectStatus, ProjectSummary
from projdash.ui.async_bridge import async_slot
from projdash.ui.dialogs import confirm
from projdash.ui.theme import COLORS, format_date, status_color

if TYPE_CHECKING:
    from projdash.errors import DashboardError
    from projdash.services.list_sync import ListSyncController

PER_PAGE_CHOICES = (5, 10, 20, 50)
_ALL_STATUSES = "All statuses"


class ProjectTableModel(QAbstractTableModel):
    """Rows of the project table."""

    HEADERS = ("Project No", "Title", "Creator", "Files", "Status", "Created At", "")
    ACTIONS_COLUMN = 6

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._projects: tuple[ProjectSummary, ...] = ()

    def set_projects(self, projects: tuple[ProjectSummary, ...]) -> None:
        self.beginResetModel()
        self._projects = projects
        self.endResetModel()

    def project_at(self, row: int) -> ProjectSummary | None:
        if 0 <= row < len(self._projects):
            return self._projects[row]
        return None

    def rowCount(self, parent: QModelIndex | QPersistentModelIndex = QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self._projects)

    def columnCount(self, parent: QModelIndex | QPersistentModelIndex = QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self.HEADERS)

    def headerData(
        self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole
    ) -> object:
        if orientation == Qt.Orientation.Horizontal and role == Qt.ItemDataRole.DisplayRole:
            return self.HEADERS[section]
        return None

    def data(
        self, index: QModelIndex | QPersistentModelIndex, role: int = Qt.ItemDataRole.DisplayRole
    ) -> object:
        if not index.isValid() or index.row() >= len(self._projects):
            return None
        project = self._projects[index.row()]
        column = index.column()
        if role == Qt.ItemDataRole.DisplayRole:
            match column:
                case 0:
                    return project.project_no
                case 1:
                    return project.title
                case 2:
                    return project.creator_name or "Unknown"
                case 3:
                    return str(project.files_count)
                case 4:
                    return project.status.value
                case 5:
                    return format_date(project.created_at)
            return None
        if role == Qt.ItemDataRole.ToolTipRole and column == 1:
            return project.description or None
        if role == Qt.ItemDataRole.ForegroundRole:
            if column == 4:
                return QColor(status_color(project.status))
            if column == 0:
                return QColor(COLORS["primary"])
        if role == Qt.ItemDataRole.UserRole:
            return project.id
        return None


class ProjectListView(QWidget):
    """Filter bar + table + pager. All state lives in the bound controller."""

    edit_requested = Signal(str)  # project_id
    create_requested = Signal()
    error_raised = Signal(str)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._controller: ListSyncController | None = None
        self._unbind: list[Callable[[], None]] = []
        self._shown: tuple[ProjectSummary, ...] | None = None

        layout = QVBoxLayout(self)
        layout.setContentsMargins(24, 20, 24, 12)
        layout.setSpacing(12)

        header = QLabel("Projects")
        header.setProperty("heading", True)
        layout.addWidget(header)

        # Filter bar: typing only updates the draft; Query applies it.
        bar = QHBoxLayout()
        bar.setSpacing(8)
        self._project_no_input = QLineEdit()
        self._project_no_input.setPlaceholderText("Project No")
        self._keyword_input = QLineEdit()
        self._keyword_input.setPlaceholderText("Search title or summary...")
        self._status_combo = QComboBox()
        self._status_combo.addItem(_ALL_STATUSES, None)
        for status in ProjectStatus:
            self._status_combo.addItem(status.value, status)
        for line_edit in (self._project_no_input, self._keyword_input):
            line_edit.textEdited.connect(self._on_draft_changed)
            line_edit.returnPressed.connect(self._on_query)
        self._status_combo.currentIndexChanged.connect(self._on_draft_changed)
        bar.addWidget(self._project_no_input, stretch=1)
        bar.addWidget(self._keyword_input, stretch=2)
        bar.addWidget(self._status_combo)

        self._query_btn = QPushButton("Query")
        self._query_btn.setProperty("primary", True)
        self._query_btn.clicked.connect(self._on_query)
        self._reset_btn = QPushButton("Reset")
        self._reset_btn.clicked.connect(self._on_reset)
        self._refresh_btn = QPushButton("Refresh")
        self._refresh_btn.clicked.connect(self._on_refresh)
        self._create_btn = QPushButton("+ Create Project")
        self._create_btn.setProperty("primary", True)
        self._create_btn.clicked.connect(self.create_requested.emit)
        for button in (self._query_btn, self._reset_btn, self._refresh_btn):
            bar.addWidget(button)
        bar.addStretch()
        bar.addWidget(self._create_btn)
        layout.addLayout(bar)

        self._model = ProjectTableModel(self)
        self._table = QTableView()
        self._table.setModel(self._model)
        self._table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self._table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self._table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self._table.verticalHeader().setVisible(False)
        self._table.setShowGrid(False)
        self._table.setAlternatingRowColors(True)
        horizontal = self._table.horizontalHeader()
        horizontal.setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
        horizontal.setSectionResizeMode(1, QHeaderView.ResizeMode.Stretch)
        self._table.doubleClicked.connect(self._on_double_clicked)
        layout.addWidget(self._table, stretch=1)

        self._empty_label = QLabel("No projects found.")
        self._empty_label.setProperty("muted", True)
        self._empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._empty_label.hide()
        layout.addWidget(self._empty_label)

        pager = QHBoxLayout()
        self._summary_label = QLabel()
        self._summary_label.setProperty("muted", True)
        pager.addWidget(self._summary_label)
        pager.addStretch()
        pager.addWidget(QLabel("Rows per page"))
        self._per_page_combo = QComboBox()
        for choice in PER_PAGE_CHOICES:
            self._per_page_combo.addItem(str(choice), choice)
        self._per_page_combo.currentIndexChanged.connect(self._on_per_page_changed)
        pager.addWidget(self._per_page_combo)
        self._prev_btn = QPushButton("‹ Prev")
        self._prev_btn.clicked.connect(self._on_prev)
        self._page_label = QLabel()
        self._next_btn = QPushButton("Next ›")
        self._next_btn.clicked.connect(self._on_next)
        pager.addWidget(self._prev_btn)
        pager.addWidget(self._page_label)
        pager.addWidget(self._next_btn)
        layout.addLayout(pager)

    def bind(self, controller: ListSyncController) -> None:
        """Attach to ``controller``; replaces any previous binding."""
        self.unbind()
        self._controller = controller
        self._shown = None
        self._unbind = [
            controller.add_listener(self._render),
            controller.add_error_listener(self._on_error),
        ]
        self._sync_per_page(controller.per_page)
        self._render(controller)

    def unbind(self) -> None:
        for unsubscribe in self._unbind:
            unsubscribe()
        self._unbind = []
        self._controller = None

    def _render(self, controller: ListSyncController) -> None:
        if controller.projects is not self._shown:
            self._shown = controller.projects
            self._model.set_projects(controller.projects)
            self._install_row_actions()
        has_rows = bool(controller.projects)
        self._empty_label.setVisible(not has_rows and not controller.loading)

        total = controller.total
        if has_rows:
            first = (controller.page - 1) * controller.per_page + 1
            last = first + len(controller.projects) - 1
            summary = f"Showing {first} to {last} of {total} projects"
        else:
            summary = f"Showing 0 of {total} projects"
        if controller.loading:
            summary += "  ·  Loading…"
        if controller.stale:
            summary += "  ·  Showing last loaded results"
        self._summary_label.setText(summary)
        self._page_label.setText(f"Page {controller.page} of {controller.last_page}")
        self._prev_btn.setEnabled(controller.page > 1)
        self._next_btn.setEnabled(controller.page < controller.last_page)

    def _install_row_actions(self) -> None:
        for row in range(self._model.rowCount()):
            project = self._model.project_at(row)
            if project is None:
                continue
            cell = QWidget()
            cell_layout = QHBoxLayout(cell)
            cell_layout.setContentsMargins(4, 0, 4, 0)
            cell_layout.setSpacing(4)
            edit_btn = QPushButton("Edit")
            edit_btn.clicked.connect(
                lambda _checked=False, pid=project.id: self.edit_requested.emit(pid)
            )
            delete_btn = QPushButton("Delete")
            delete_btn.setProperty("danger", True)
            delete_btn.clicked.connect(
                lambda _checked=False, pid=project.id: self._on_delete(pid)
            )
            cell_layout.addWidget(edit_btn)
            cell_layout.addWidget(delete_btn)
            self._table.setIndexWidget(
                self._model.index(row, ProjectTableModel.ACTIONS_COLUMN), cell
            )

    def _on_error(self, error: DashboardError) -> None:
        self.error_raised.emit(error.user_message)

    def _current_draft(self) -> ProjectFilters:
        return ProjectFilters(
            project_no=self._project_no_input.text(),
            keyword=self._keyword_input.text(),
            status=self._status_combo.currentData(),
        )

    def _on_draft_changed(self, *_args: object) -> None:
        if self._controller is not None:
            self._controller.set_draft_filters(self._current_draft())

    def _sync_per_page(self, per_page: int) -> None:
        index = self._per_page_combo.findData(per_page)
        if index < 0:
            self._per_page_combo.addItem(str(per_page), per_page)
            index = self._per_page_combo.count() - 1
        self._per_page_combo.blockSignals(True)
        self._per_page_combo.setCurrentIndex(index)
        self._per_page_combo.blockSignals(False)

    def _on_double_clicked(self, index: QModelIndex) -> None:
        project = self._model.project_at(index.row())
        if project is not None:
            self.edit_requested.emit(project.id)

    @async_slot
    async def _on_query(self) -> None:
        if self._controller is not None:
            await self._controller.apply_filters(self._current_draft())

    @async_slot
    async def _on_reset(self) -> None:
        if self._controller is None:
            return
        self._project_no_input.clear()
        self._keyword_input.clear()
        self._status_combo.blockSignals(True)
        self._status_combo.setCurrentIndex(0)
        self._status_combo.blockSignals(False)
        await self._controller.reset_filters()

    @async_slot
    async def _on_refresh(self) -> None:
        if self._controller is not None:
            await self._controller.refetch()

    @async_slot
    async def _on_prev(self) -> None:
        if self._controller is not None:
            await self._controller.set_page(self._controller.page - 1)

    @async_slot
    async def _on_next(self) -> None:
        if self._controller is not None:
            await self._controller.set_page(self._controller.page + 1)

    @async_slot
    async def _on_per_page_changed(self, _index: int) -> None:
        per_page = self._per_page_combo.currentData()
        if self._controller is not None and per_page:
            await self._controller.set_per_page(int(per_page))

    @async_slot
    async def _on_delete(self, project_id: str) -> None:
        controller = self._controller
        if controller is None:
            return
        project = controller.request_delete(project_id)
        if project is None:
            return
        accepted = confirm(
            self,
            "Delete project",
            f"Delete {project.project_no} “{project.title}” and all of its documents? "
            "This cannot be undone.",
        )
        if not accepted:
            controller.cancel_delete()
            return
        await controller.confirm_delete(project_id)
