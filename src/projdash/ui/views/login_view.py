"""Sign-in / registration view."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QFormLayout,
    QFrame,
    QLabel,
    QLineEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)
from result import Err

from projdash.ui.async_bridge import async_slot
from projdash.ui.theme import COLORS

if TYPE_CHECKING:
    from projdash.services.auth_service import AuthService


class LoginView(QWidget):
    """Email/password form that toggles between sign-in and registration."""

    authenticated = Signal()

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._auth: AuthService | None = None
        self._register_mode = False
        self._busy = False

        outer = QVBoxLayout(self)
        outer.setAlignment(Qt.AlignmentFlag.AlignCenter)

        card = QFrame()
        card.setFixedWidth(380)
        card.setStyleSheet(
            f"QFrame {{ border: 1px solid {COLORS['border']}; border-radius: 12px; }}"
        )
        layout = QVBoxLayout(card)
        layout.setContentsMargins(28, 28, 28, 28)
        layout.setSpacing(14)

        self._title = QLabel()
        self._title.setProperty("heading", True)
        layout.addWidget(self._title)
        self._subtitle = QLabel()
        self._subtitle.setProperty("muted", True)
        self._subtitle.setWordWrap(True)
        layout.addWidget(self._subtitle)

        form = QFormLayout()
        form.setSpacing(10)
        self._name_label = QLabel("Full name")
        self._name_input = QLineEdit()
        self._name_input.setPlaceholderText("Jane Doe")
        form.addRow(self._name_label, self._name_input)
        self._email_input = QLineEdit()
        self._email_input.setPlaceholderText("you@company.com")
        form.addRow("Email", self._email_input)
        self._password_input = QLineEdit()
        self._password_input.setEchoMode(QLineEdit.EchoMode.Password)
        self._password_input.returnPressed.connect(self._on_submit)
        form.addRow("Password", self._password_input)
        layout.addLayout(form)

        self._error_label = QLabel()
        self._error_label.setWordWrap(True)
        self._error_label.setStyleSheet(f"color: {COLORS['error']}; font-size: 12px;")
        self._error_label.hide()
        layout.addWidget(self._error_label)

        self._submit_btn = QPushButton()
        self._submit_btn.setProperty("primary", True)
        self._submit_btn.clicked.connect(self._on_submit)
        layout.addWidget(self._submit_btn)

        self._toggle_btn = QPushButton()
        self._toggle_btn.setFlat(True)
        self._toggle_btn.clicked.connect(self._toggle_mode)
        layout.addWidget(self._toggle_btn)

        outer.addWidget(card)
        self._apply_mode()

    def set_auth_service(self, auth: AuthService) -> None:
        self._auth = auth

    def reset(self) -> None:
        self._password_input.clear()
        self._error_label.hide()

    def _toggle_mode(self) -> None:
        self._register_mode = not self._register_mode
        self._apply_mode()

    def _apply_mode(self) -> None:
        registering = self._register_mode
        self._title.setText("Create account" if registering else "Sign in")
        self._subtitle.setText(
            "Register to start managing projects."
            if registering
            else "Welcome back. Sign in to the project dashboard."
        )
        self._name_label.setVisible(registering)
        self._name_input.setVisible(registering)
        self._submit_btn.setText("Register" if registering else "Sign In")
        self._toggle_btn.setText(
            "Already have an account? Sign in" if registering else "No account yet? Register"
        )
        self._error_label.hide()

    def _show_error(self, text: str) -> None:
        self._error_label.setText(text)
        self._error_label.show()

    @async_slot
    async def _on_submit(self) -> None:
        if self._auth is None or self._busy:
            return
        email = self._email_input.text().strip()
        password = self._password_input.text()
        if not email or not password:
            self._show_error("Email and password are required.")
            return

        self._busy = True
        self._submit_btn.setEnabled(False)
        try:
            if self._register_mode:
                result = await self._auth.sign_up(email, password, self._name_input.text())
            else:
                result = await self._auth.sign_in(email, password)
        finally:
            self._busy = False
            self._submit_btn.setEnabled(True)

        if isinstance(result, Err):
            self._show_error(result.err_value.user_message)
            return
        self.reset()
        self.authenticated.emit()
