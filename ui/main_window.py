from __future__ import annotations
from PySide6.QtWidgets import QMainWindow, QTabWidget, QMessageBox, QInputDialog
from PySide6.QtGui import QAction
import logging

from core.errors import BackendError
from core.rendering.export import ExportPipeline
from core.rendering.qt_surface import QtRenderBackend
from core.services.session import ErpSession
from ui.widgets.document_editor import DocumentEditor

log = logging.getLogger(__name__)

TAB_TITLES = {"invoice": "Invoice", "quotation": "Quotation"}


class MainWindow(QMainWindow):
    def __init__(self, session: ErpSession):
        super().__init__()
        self.setWindowTitle(f"{session.settings.company.name} - Invoices & Quotations")
        self.resize(1100, 900)
        self.session = session

        self.tabs = QTabWidget()
        self.setCentralWidget(self.tabs)
        self._build_menu()

        self._refresh_data(silent=True)
        for kind in ("invoice", "quotation"):
            self.tabs.addTab(self._editor(self.session.new_document(kind)), TAB_TITLES[kind])

    def _editor(self, doc_session) -> DocumentEditor:
        # one pipeline per editor: print and download of a document share its busy flag
        exporter = ExportPipeline(QtRenderBackend(parent_widget=self), self.session.settings)
        return DocumentEditor(doc_session, exporter)

    def _build_menu(self):
        menu = self.menuBar().addMenu("File")
        for label, slot in (
            ("New invoice", lambda: self._new("invoice")),
            ("New quotation", lambda: self._new("quotation")),
            ("Open invoice...", lambda: self._open("invoice")),
            ("Open quotation...", lambda: self._open("quotation")),
            ("Refresh inventory && customers", self._refresh_data),
        ):
            act = QAction(label, self)
            act.triggered.connect(slot)
            menu.addAction(act)

    def _refresh_data(self, silent: bool = False):
        try:
            self.session.refresh()
        except BackendError as e:
            log.error("Refresh failed: %s", e.message)
            if not silent:
                QMessageBox.warning(self, "Refresh", e.message)

    def _confirm_discard(self, idx: int) -> bool:
        editor = self.tabs.widget(idx)
        if isinstance(editor, DocumentEditor) and editor.session.dirty:
            answer = QMessageBox.question(self, "Unsaved changes", "Discard the unsaved changes?")
            return answer == QMessageBox.Yes
        return True

    def _replace_tab(self, kind: str, editor: DocumentEditor, title: str):
        idx = 0 if kind == "invoice" else 1
        old = self.tabs.widget(idx)
        self.tabs.removeTab(idx)
        if old is not None:
            old.deleteLater()
        self.tabs.insertTab(idx, editor, title)
        self.tabs.setCurrentIndex(idx)

    def _new(self, kind: str):
        idx = 0 if kind == "invoice" else 1
        if not self._confirm_discard(idx):
            return
        self._replace_tab(kind, self._editor(self.session.new_document(kind)), TAB_TITLES[kind])

    def _open(self, kind: str):
        idx = 0 if kind == "invoice" else 1
        if not self._confirm_discard(idx):
            return
        number, ok = QInputDialog.getText(self, f"Open {kind}", f"{TAB_TITLES[kind]} number:")
        if not ok or not number.strip():
            return
        try:
            doc_session = self.session.open_document(kind, number.strip())
        except BackendError as e:
            QMessageBox.warning(self, f"Open {kind}", e.message)
            return
        if kind == "quotation":
            try:
                doc_session.expire_if_due()
            except BackendError as e:
                log.warning("Could not mark %s expired: %s", number, e.message)
        title = f"{TAB_TITLES[kind]} {doc_session.document.document_id}"
        self._replace_tab(kind, self._editor(doc_session), title)
