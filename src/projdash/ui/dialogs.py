"""Modal dialogs: confirmation, project creation and document upload."""

from __future__ import annotations

from pathlib import Path

from PySide6.QtWidgets import (
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from projdash.models.files import DocumentCategory
from projdash.models.projects import ProjectDraft, ProjectStatus
from projdash.models.strategy import StrategyFit, StrategyInfo
from projdash.ui.theme import COLORS


def confirm(parent: QWidget | None, title: str, text: str) -> bool:
    """Blocking yes/no prompt, defaulting to No."""
    answer = QMessageBox.question(
        parent,
        title,
        text,
        QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
        QMessageBox.StandardButton.No,
    )
    return answer == QMessageBox.StandardButton.Yes


class CreateProjectDialog(QDialog):
    """Collects the fields of a new project and its initial strategy."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Create New Project")
        self.setMinimumWidth(520)

        layout = QVBoxLayout(self)
        form = QFormLayout()
        self._title_input = QLineEdit()
        self._title_input.setPlaceholderText("e.g. Q3 Marketing Campaign")
        form.addRow("Project title *", self._title_input)
        self._summary_input = QPlainTextEdit()
        self._summary_input.setPlaceholderText("Short description of the project")
        self._summary_input.setFixedHeight(80)
        form.addRow("Summary", self._summary_input)
        self._url_input = QLineEdit()
        self._url_input.setPlaceholderText("https://")
        form.addRow("Project URL", self._url_input)
        self._status_combo = QComboBox()
        for status in ProjectStatus:
            self._status_combo.addItem(status.value, status)
        self._status_combo.setCurrentIndex(self._status_combo.findData(ProjectStatus.PENDING))
        form.addRow("Status", self._status_combo)
        self._fit_combo = QComboBox()
        for fit in StrategyFit:
            self._fit_combo.addItem(fit.value, fit)
        self._fit_combo.setCurrentIndex(self._fit_combo.findData(StrategyFit.GROUP))
        form.addRow("Strategy fit", self._fit_combo)
        self._urgency_input = QPlainTextEdit()
        self._urgency_input.setFixedHeight(60)
        form.addRow("Demand urgency", self._urgency_input)
        layout.addLayout(form)

        self._error_label = QLabel()
        self._error_label.setStyleSheet(f"color: {COLORS['error']};")
        self._error_label.hide()
        layout.addWidget(self._error_label)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.button(QDialogButtonBox.StandardButton.Ok).setText("Create Project")
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _on_accept(self) -> None:
        if not self._title_input.text().strip():
            self._error_label.setText("A project title is required.")
            self._error_label.show()
            return
        self.accept()

    def draft(self) -> ProjectDraft:
        return ProjectDraft(
            title=self._title_input.text().strip(),
            summary=self._summary_input.toPlainText().strip(),
            project_url=self._url_input.text().strip(),
            status=self._status_combo.currentData(),
        )

    def strategy(self) -> StrategyInfo:
        return StrategyInfo(
            strategy_fit=self._fit_combo.currentData(),
            demand_urgency=self._urgency_input.toPlainText().strip(),
        )


class UploadDocumentsDialog(QDialog):
    """Pick one or more files and the document category they belong to."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Upload Project Documents")
        self.setMinimumWidth(480)
        self._paths: list[Path] = []

        layout = QVBoxLayout(self)
        subtitle = QLabel("Add supporting documentation to your project application")
        subtitle.setProperty("muted", True)
        layout.addWidget(subtitle)

        category_row = QHBoxLayout()
        category_row.addWidget(QLabel("Document Category"))
        self._category_combo = QComboBox()
        for category in DocumentCategory:
            self._category_combo.addItem(category.value, category)
        category_row.addWidget(self._category_combo, stretch=1)
        layout.addLayout(category_row)

        self._file_list = QListWidget()
        layout.addWidget(self._file_list)
        browse = QPushButton("Browse files…")
        browse.clicked.connect(self._browse)
        layout.addWidget(browse)

        self._buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        self._buttons.button(QDialogButtonBox.StandardButton.Ok).setText("Confirm Upload")
        self._buttons.button(QDialogButtonBox.StandardButton.Ok).setEnabled(False)
        self._buttons.accepted.connect(self.accept)
        self._buttons.rejected.connect(self.reject)
        layout.addWidget(self._buttons)

    def _browse(self) -> None:
        names, _ = QFileDialog.getOpenFileNames(self, "Select documents")
        for name in names:
            path = Path(name)
            if path not in self._paths:
                self._paths.append(path)
                self._file_list.addItem(path.name)
        self._buttons.button(QDialogButtonBox.StandardButton.Ok).setEnabled(bool(self._paths))

    def paths(self) -> list[Path]:
        return list(self._paths)

    def category(self) -> DocumentCategory:
        return self._category_combo.currentData()
