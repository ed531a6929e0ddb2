"""PySide6 application bootstrap: main window, service init, run_app()."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from PySide6.QtCore import QSettings
from PySide6.QtGui import QCloseEvent, QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QStackedWidget,
    QStatusBar,
    QVBoxLayout,
    QWidget,
)
from result import Err

from projdash.services.container import ServiceContainer
from projdash.ui.async_bridge import async_slot, cancel_all_tasks, create_event_loop, schedule
from projdash.ui.dialogs import CreateProjectDialog
from projdash.ui.theme import COLORS, build_stylesheet
from projdash.ui.views.login_view import LoginView
from projdash.ui.views.project_edit_view import ProjectEditView
from projdash.ui.views.project_list_view import ProjectListView

if TYPE_CHECKING:
    from projdash.config import Config
    from projdash.services.list_sync import ListSyncController

logger = logging.getLogger(__name__)

ERROR_TOAST_MS = 6000


class ProjDashMainWindow(QMainWindow):
    """Login, project list and project editor stacked in one window."""

    def __init__(self, config: Config) -> None:
        super().__init__()
        self._config = config
        self._services: ServiceContainer | None = None
        self._controller: ListSyncController | None = None
        self._shutdown_in_progress = False

        self.setWindowTitle("Project Dashboard")
        self.setMinimumSize(1100, 700)

        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)

        # ── Header ──
        self._header = QWidget()
        self._header.setStyleSheet(
            f"background-color: {COLORS['bg']}; border-bottom: 1px solid {COLORS['border']};"
        )
        header_layout = QHBoxLayout(self._header)
        header_layout.setContentsMargins(24, 10, 24, 10)
        brand = QLabel("Project Dashboard")
        brand.setStyleSheet(f"font-weight: bold; font-size: 15px; color: {COLORS['primary']};")
        header_layout.addWidget(brand)
        header_layout.addStretch()
        self._user_label = QLabel()
        self._user_label.setProperty("muted", True)
        header_layout.addWidget(self._user_label)
        self._sign_out_btn = QPushButton("Sign out")
        self._sign_out_btn.clicked.connect(self._on_sign_out)
        header_layout.addWidget(self._sign_out_btn)
        self._header.hide()
        layout.addWidget(self._header)

        # ── Pages ──
        self._stack = QStackedWidget()
        self._login_view = LoginView()
        self._list_view = ProjectListView()
        self._edit_view = ProjectEditView()
        for page in (self._login_view, self._list_view, self._edit_view):
            self._stack.addWidget(page)
        layout.addWidget(self._stack, stretch=1)

        # ── Status bar ──
        self._status_bar = QStatusBar()
        self.setStatusBar(self._status_bar)
        self._status_label = QLabel("Loading...")
        self._status_bar.addWidget(self._status_label)

        # ── Wire signals ──
        self._login_view.authenticated.connect(self._on_authenticated)
        self._list_view.edit_requested.connect(self._on_edit_requested)
        self._list_view.create_requested.connect(self._on_create_requested)
        self._list_view.error_raised.connect(self._show_error)
        self._edit_view.back_requested.connect(self._show_list)
        self._edit_view.project_changed.connect(self._on_project_changed)
        self._edit_view.error_raised.connect(self._show_error)
        self._edit_view.message.connect(self._show_message)

        QShortcut(QKeySequence("F5"), self, self._on_refresh_shortcut)
        self._restore_state()

    async def initialize(self) -> None:
        """Build services and resume an existing session if there is one."""
        try:
            logger.info("Starting projdash: building service container...")
            self._services = await ServiceContainer.create(self._config)
            self._login_view.set_auth_service(self._services.auth_service)
            backend = "Supabase" if self._config.use_remote else "local store"
            self._status_label.setText(f"Connected to {backend}")
            session = await self._services.auth_service.get_session()
            if session is None:
                self._stack.setCurrentWidget(self._login_view)
            else:
                await self._enter_dashboard()
        except Exception:
            logger.exception("Application startup failed")
            self._status_label.setText("Startup failed. Check terminal logs.")

    @async_slot
    async def _on_authenticated(self) -> None:
        await self._enter_dashboard()

    async def _enter_dashboard(self) -> None:
        if self._services is None:
            return
        user = self._services.auth_service.current_user
        self._user_label.setText(user.display_name if user is not None else "")
        self._header.show()
        await self._stop_controller()
        controller = self._services.list_controller()
        self._controller = controller
        self._list_view.bind(controller)
        self._stack.setCurrentWidget(self._list_view)
        await controller.start()

    async def _stop_controller(self) -> None:
        controller, self._controller = self._controller, None
        if controller is not None:
            self._list_view.unbind()
            await controller.stop()

    def _show_list(self) -> None:
        self._stack.setCurrentWidget(self._list_view)

    def _on_edit_requested(self, project_id: str) -> None:
        if self._services is None:
            return
        self._edit_view.open_project(self._services.editor(project_id))
        self._stack.setCurrentWidget(self._edit_view)

    def _on_project_changed(self, project_id: str) -> None:
        if self._controller is not None:
            schedule(self._controller.refresh_row(project_id))

    def _on_refresh_shortcut(self) -> None:
        if self._controller is not None and self._stack.currentWidget() is self._list_view:
            schedule(self._controller.refetch())

    @async_slot
    async def _on_create_requested(self) -> None:
        if self._services is None:
            return
        dialog = CreateProjectDialog(self)
        if not dialog.exec():
            return
        user = self._services.auth_service.current_user
        result = await self._services.project_service.create_project_with_strategy(
            dialog.draft(), dialog.strategy(), user.id if user is not None else None
        )
        if isinstance(result, Err):
            self._show_error(result.err_value.user_message)
            return
        project, _strategy = result.ok_value
        self._show_message(f"Created {project.project_no}")
        if self._controller is not None:
            await self._controller.refetch()

    @async_slot
    async def _on_sign_out(self) -> None:
        if self._services is None:
            return
        await self._stop_controller()
        result = await self._services.auth_service.sign_out()
        if isinstance(result, Err):
            self._show_error(result.err_value.user_message)
        self._header.hide()
        self._stack.setCurrentWidget(self._login_view)

    def _show_error(self, text: str) -> None:
        self._status_bar.setProperty("error", True)
        self._status_bar.style().polish(self._status_bar)
        self._status_bar.showMessage(text, ERROR_TOAST_MS)

    def _show_message(self, text: str) -> None:
        self._status_bar.setProperty("error", False)
        self._status_bar.style().polish(self._status_bar)
        self._status_bar.showMessage(text, 3000)

    def _restore_state(self) -> None:
        settings = QSettings("projdash", "ProjectDashboard")
        geometry = settings.value("geometry")
        if geometry:
            self.restoreGeometry(geometry)  # type: ignore[arg-type]

    def closeEvent(self, event: QCloseEvent) -> None:
        """Save geometry, then stop the controller and services before quitting."""
        settings = QSettings("projdash", "ProjectDashboard")
        settings.setValue("geometry", self.saveGeometry())
        settings.sync()

        if self._shutdown_in_progress or self._services is None:
            event.accept()
            app = QApplication.instance()
            if app is not None:
                app.quit()
            return

        self._shutdown_in_progress = True
        event.ignore()
        self._status_label.setText("Shutting down...")
        schedule(self._shutdown_and_quit())

    async def _shutdown_and_quit(self) -> None:
        try:
            await self._stop_controller()
            cancel_all_tasks()
            if self._services is not None:
                await self._services.close()
                self._services = None
        except Exception:
            logger.exception("Error while shutting down services")
        finally:
            app = QApplication.instance()
            if app is not None:
                app.quit()


def run_app(config: Config) -> None:
    """Entry point: create QApplication, event loop, main window, and run."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    app = QApplication(sys.argv)
    app.setApplicationName("Project Dashboard")
    app.setOrganizationName("projdash")
    app.setStyleSheet(build_stylesheet())

    loop = create_event_loop(app)

    window = ProjDashMainWindow(config)
    window.show()

    schedule(window.initialize())

    with loop:
        loop.run_forever()
