"""
Cyberpunk 2077 Mod Loader - GUI (PySide6)
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt, QThread, QTimer, Signal, QUrl
from PySide6.QtGui import QDesktopServices, QFont, QColor
from PySide6.QtWidgets import (
    QApplication,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QInputDialog,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QSplitter,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from conflict_detection import LaunchPreview
from mod_loader import ModLoader
from mod_repository import ModPackage

STATUS_POLL_MS = 2000


# ── Worker Thread ─────────────────────────────────────────────────────

class WorkerThread(QThread):
    """Run a blocking operation off the main thread."""

    finished_signal = Signal(bool, str)  # success, message

    def __init__(self, func, *args, **kwargs):
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self):
        try:
            result = self.func(*self.args, **self.kwargs)
            if isinstance(result, tuple) and len(result) == 2:
                self.finished_signal.emit(result[0], result[1])
            else:
                self.finished_signal.emit(True, "Done")
        except Exception as e:
            logging.getLogger(__name__).exception("Background operation failed")
            self.finished_signal.emit(False, str(e))


# ── Launch Preview Dialog ─────────────────────────────────────────────

class PreviewDialog(QDialog):
    """Shows the files the next launch will overlay and who wins conflicts."""

    def __init__(self, preview: LaunchPreview, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Launch Preview")
        self.setMinimumSize(700, 450)

        layout = QVBoxLayout(self)
        summary = QLabel(
            f"<b>{preview.total_files}</b> file(s), "
            f"<b>{preview.total_size_mb}</b> MB, "
            f"<b>{preview.conflict_count}</b> conflict(s)"
        )
        layout.addWidget(summary)

        tree = QTreeWidget()
        tree.setHeaderLabels(["Path", "Winner", "Overridden"])
        tree.setColumnWidth(0, 420)
        tree.setRootIsDecorated(False)
        for record in preview.conflicts:
            item = QTreeWidgetItem([
                record.relative_path,
                record.winner,
                ", ".join(record.contributors[:-1]),
            ])
            item.setForeground(1, QColor("#c62828"))
            tree.addTopLevelItem(item)
        layout.addWidget(tree, 1)

        if preview.missing_mods:
            missing = QLabel("Missing mod folders: " + ", ".join(preview.missing_mods))
            missing.setWordWrap(True)
            layout.addWidget(missing)

        buttons = QDialogButtonBox(QDialogButtonBox.Close)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)


# ── Edit Mod Dialog ───────────────────────────────────────────────────

class EditModDialog(QDialog):
    def __init__(self, mod: ModPackage, categories: list[str], parent=None):
        super().__init__(parent)
        self.setWindowTitle(f"Edit: {mod.id}")
        self.setMinimumWidth(420)
        meta = mod.metadata

        form = QFormLayout(self)
        self.name_edit = QLineEdit(meta.display_name)
        self.category_combo = QComboBox()
        self.category_combo.setEditable(True)
        self.category_combo.addItems(categories)
        self.category_combo.setCurrentText(meta.category)
        self.tags_edit = QLineEdit(", ".join(meta.tags))
        self.author_edit = QLineEdit(meta.author)
        self.version_edit = QLineEdit(meta.version)
        self.description_edit = QPlainTextEdit(meta.description)
        self.description_edit.setMaximumHeight(100)

        form.addRow("Name:", self.name_edit)
        form.addRow("Category:", self.category_combo)
        form.addRow("Tags:", self.tags_edit)
        form.addRow("Author:", self.author_edit)
        form.addRow("Version:", self.version_edit)
        form.addRow("Description:", self.description_edit)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        form.addRow(buttons)

    def get_values(self) -> dict:
        return {
            "display_name": self.name_edit.text().strip(),
            "category": self.category_combo.currentText().strip(),
            "tags": [t for t in self.tags_edit.text().split(",") if t.strip()],
            "author": self.author_edit.text().strip(),
            "version": self.version_edit.text().strip(),
            "description": self.description_edit.toPlainText(),
        }


# ── Main Window ───────────────────────────────────────────────────────

class MainWindow(QMainWindow):
    # Signal used to safely append log messages from background threads.
    # Qt automatically queues cross-thread signal emissions to the main thread.
    _log_message = Signal(str)

    def __init__(
        self,
        data_dir: Path,
        logger: logging.Logger | None = None,
        *,
        installation_path_override: str | None = None,
        window_title_suffix: str | None = None,
    ):
        super().__init__()
        self._logger = logger or logging.getLogger(__name__)
        title = "Cyberpunk 2077 Mod Loader"
        if window_title_suffix:
            title += f" {window_title_suffix}"
        self.setWindowTitle(title)
        self.setMinimumSize(900, 600)

        self.worker: Optional[WorkerThread] = None

        self._build_ui()
        self._log_message.connect(self.log_text.appendPlainText)

        self.loader = ModLoader(
            data_dir,
            log_callback=self._append_log,
            installation_path=installation_path_override,
        )
        for issue in self.loader.validate_paths():
            self._append_log(f"Warning: {issue}")

        self.status_timer = QTimer(self)
        self.status_timer.timeout.connect(self._update_game_status)
        self.status_timer.start(STATUS_POLL_MS)

        self._refresh()

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QVBoxLayout(central)

        # ── Toolbar row ───────────────────────────────────────────────
        toolbar = QHBoxLayout()

        self.game_dir_btn = QPushButton("Game Folder...")
        self.game_dir_btn.clicked.connect(self._choose_installation)
        toolbar.addWidget(self.game_dir_btn)

        self.refresh_btn = QPushButton("Refresh")
        self.refresh_btn.clicked.connect(self._refresh)
        toolbar.addWidget(self.refresh_btn)

        toolbar.addWidget(QLabel("Profile:"))
        self.profile_combo = QComboBox()
        self.profile_combo.activated.connect(self._switch_profile)
        toolbar.addWidget(self.profile_combo)

        self.save_profile_btn = QPushButton("Save Profile...")
        self.save_profile_btn.clicked.connect(self._save_profile)
        toolbar.addWidget(self.save_profile_btn)

        toolbar.addStretch()

        self.game_status_label = QLabel("Game not running")
        toolbar.addWidget(self.game_status_label)

        self.status_label = QLabel()
        toolbar.addWidget(self.status_label)

        main_layout.addLayout(toolbar)

        # ── Splitter: mod list | log ──────────────────────────────────
        splitter = QSplitter(Qt.Vertical)

        top_widget = QWidget()
        top_layout = QVBoxLayout(top_widget)
        top_layout.setContentsMargins(0, 0, 0, 0)
        top_layout.addWidget(QLabel("<b>Mods</b> (later mods override earlier ones)"))

        self.tree = QTreeWidget()
        self.tree.setHeaderLabels(["Mod", "Category", "Version", "Tags"])
        self.tree.setColumnWidth(0, 360)
        self.tree.setColumnWidth(1, 110)
        self.tree.setColumnWidth(2, 80)
        self.tree.setRootIsDecorated(False)
        self.tree.setSelectionMode(QTreeWidget.SingleSelection)
        self.tree.itemChanged.connect(self._on_item_changed)
        top_layout.addWidget(self.tree, 1)

        action_row = QHBoxLayout()
        self.import_btn = QPushButton("Import...")
        self.import_btn.clicked.connect(self._import_archives)
        action_row.addWidget(self.import_btn)

        self.up_btn = QPushButton("Move Up")
        self.up_btn.clicked.connect(lambda: self._move_selected(-1))
        action_row.addWidget(self.up_btn)

        self.down_btn = QPushButton("Move Down")
        self.down_btn.clicked.connect(lambda: self._move_selected(1))
        action_row.addWidget(self.down_btn)

        self.edit_btn = QPushButton("Edit...")
        self.edit_btn.clicked.connect(self._edit_selected)
        action_row.addWidget(self.edit_btn)

        self.delete_btn = QPushButton("Delete")
        self.delete_btn.clicked.connect(self._delete_selected)
        action_row.addWidget(self.delete_btn)

        self.reveal_btn = QPushButton("Show Folder")
        self.reveal_btn.clicked.connect(self._reveal_selected)
        action_row.addWidget(self.reveal_btn)

        action_row.addStretch()

        self.deps_btn = QPushButton("Check Dependencies")
        self.deps_btn.clicked.connect(self._check_dependencies)
        action_row.addWidget(self.deps_btn)

        self.preview_btn = QPushButton("Preview Conflicts")
        self.preview_btn.clicked.connect(self._show_preview)
        action_row.addWidget(self.preview_btn)

        self.clean_btn = QPushButton("Clean Virtual Game")
        self.clean_btn.clicked.connect(self._clean_virtual)
        action_row.addWidget(self.clean_btn)

        self.launch_btn = QPushButton("Launch")
        self.launch_btn.clicked.connect(self._launch)
        action_row.addWidget(self.launch_btn)

        top_layout.addLayout(action_row)
        splitter.addWidget(top_widget)

        bottom_widget = QWidget()
        bottom_layout = QVBoxLayout(bottom_widget)
        bottom_layout.setContentsMargins(0, 0, 0, 0)
        bottom_layout.addWidget(QLabel("<b>Log</b>"))

        self.log_text = QPlainTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setFont(QFont("Consolas", 9))
        self.log_text.setMaximumBlockCount(5000)
        bottom_layout.addWidget(self.log_text, 1)

        splitter.addWidget(bottom_widget)
        splitter.setChildrenCollapsible(False)
        splitter.setStretchFactor(0, 5)
        splitter.setStretchFactor(1, 2)
        splitter.setSizes([520, 140])
        main_layout.addWidget(splitter)

        # ── Progress bar ──────────────────────────────────────────────
        self.progress = QProgressBar()
        self.progress.setVisible(False)
        self.progress.setRange(0, 0)  # indeterminate
        main_layout.addWidget(self.progress)

    # ── Logging ───────────────────────────────────────────────────────

    def _append_log(self, msg: str):
        self._log_message.emit(msg)  # thread-safe: Qt queues this to the main thread

    # ── Mod list ──────────────────────────────────────────────────────

    def _refresh(self):
        self._populate_tree()
        self._populate_profiles()
        self._update_game_status()
        installation = self.loader.installation_path
        self.status_label.setText(f"Game: {installation}" if installation else "Game folder not set")

    def _populate_tree(self):
        selected = self._selected_mod_id()
        self.tree.blockSignals(True)
        self.tree.clear()
        for mod, enabled in self.loader.mods_in_load_order():
            meta = mod.metadata
            item = QTreeWidgetItem([meta.display_name, meta.category, meta.version, ", ".join(meta.tags)])
            item.setData(0, Qt.UserRole, mod.id)
            item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
            item.setCheckState(0, Qt.Checked if enabled else Qt.Unchecked)
            if not enabled:
                item.setForeground(0, QColor("#757575"))
            self.tree.addTopLevelItem(item)
            if mod.id == selected:
                self.tree.setCurrentItem(item)
        self.tree.blockSignals(False)

    def _populate_profiles(self):
        self.profile_combo.clear()
        config = self.loader.config
        for key, profile in config.profiles.items():
            self.profile_combo.addItem(profile.name, userData=key)
            if key == config.current_profile:
                self.profile_combo.setCurrentIndex(self.profile_combo.count() - 1)

    def _selected_mod_id(self) -> Optional[str]:
        item = self.tree.currentItem()
        return item.data(0, Qt.UserRole) if item else None

    def _on_item_changed(self, item: QTreeWidgetItem, column: int):
        if column != 0:
            return
        mod_id = item.data(0, Qt.UserRole)
        ok, message = self.loader.set_mod_enabled(mod_id, item.checkState(0) == Qt.Checked)
        if not ok:
            QMessageBox.warning(self, "Operation Failed", message)
        self._populate_tree()

    def _move_selected(self, offset: int):
        mod_id = self._selected_mod_id()
        if mod_id:
            self.loader.move_mod(mod_id, offset)
            self._populate_tree()

    def _edit_selected(self):
        mod_id = self._selected_mod_id()
        if not mod_id:
            return
        mod = self.loader.repository.get(mod_id)
        categories, _ = self.loader.repository.categories_and_tags()
        dlg = EditModDialog(mod, categories, self)
        if dlg.exec() != QDialog.Accepted:
            return
        ok, message = self.loader.update_mod(mod_id, **dlg.get_values())
        if not ok:
            QMessageBox.warning(self, "Invalid Values", message)
        self._populate_tree()

    def _delete_selected(self):
        mod_id = self._selected_mod_id()
        if not mod_id:
            return
        reply = QMessageBox.question(
            self,
            "Confirm Delete",
            f"Delete '{mod_id}'?\n\nThe mod folder will be removed from the mod library.",
            QMessageBox.Yes | QMessageBox.No,
        )
        if reply == QMessageBox.Yes:
            self._run_in_worker(self.loader.delete_mod, mod_id)

    def _reveal_selected(self):
        mod_id = self._selected_mod_id()
        path = self.loader.repository.mod_path(mod_id) if mod_id else self.loader.mods_dir
        if path.exists():
            QDesktopServices.openUrl(QUrl.fromLocalFile(str(path)))

    # ── Import ────────────────────────────────────────────────────────

    def _import_archives(self):
        paths, _ = QFileDialog.getOpenFileNames(
            self, "Import Mod Archives", "", "Mod archives (*.zip *.7z *.rar)"
        )
        if paths:
            self._run_in_worker(self._import_many, paths)

    def _import_many(self, paths: list[str]) -> tuple[bool, str]:
        failures = []
        for path in paths:
            ok, message = self.loader.import_mod(path)
            if not ok:
                failures.append(f"{Path(path).name}: {message}")
        if failures:
            return False, "Some archives could not be imported:\n\n" + "\n".join(failures)
        return True, f"Imported {len(paths)} archive(s)"

    # ── Game folder / profiles ────────────────────────────────────────

    def _choose_installation(self):
        start = str(self.loader.installation_path or "")
        path = QFileDialog.getExistingDirectory(self, "Select Cyberpunk 2077 Folder", start)
        if not path:
            return
        ok, message = self.loader.set_installation_path(path)
        if not ok:
            QMessageBox.warning(self, "Invalid Folder", message)
        else:
            self._append_log(message)
        self._refresh()

    def _save_profile(self):
        name, ok = QInputDialog.getText(self, "Save Profile", "Profile name:")
        if ok and name.strip():
            key = name.strip().lower().replace(" ", "_")
            self.loader.save_profile(key, name.strip())
            self._refresh()

    def _switch_profile(self, index: int):
        key = self.profile_combo.itemData(index)
        if key and key != self.loader.config.current_profile:
            self.loader.switch_profile(key)
            self._refresh()

    # ── Preview / dependencies ────────────────────────────────────────

    def _show_preview(self):
        PreviewDialog(self.loader.preview(), self).exec()

    def _check_dependencies(self):
        results = self.loader.check_dependencies()
        if not results:
            QMessageBox.information(self, "Dependencies", "Enabled mods need no known frameworks.")
            return
        lines = []
        for dep, installed, users in results:
            mark = "OK" if installed else "MISSING"
            lines.append(f"[{mark}] {dep.name} (needed by {', '.join(users)})")
            if not installed:
                lines.append(f"        {dep.nexus_url}")
        QMessageBox.information(self, "Dependencies", "\n".join(lines))

    # ── Launch ────────────────────────────────────────────────────────

    def _launch(self):
        self._run_in_worker(self.loader.launch)

    def _clean_virtual(self):
        ok, message = self.loader.clean_virtual_environment()
        self._append_log(message)
        if not ok:
            QMessageBox.warning(self, "Operation Failed", message)

    def _update_game_status(self):
        state = self.loader.game_status()
        if state.is_running:
            self.game_status_label.setText(f"Game running (pid {state.process_id})")
            self.game_status_label.setStyleSheet("color: #2e7d32;")
        else:
            self.game_status_label.setText("Game not running")
            self.game_status_label.setStyleSheet("")

    # ── Worker Thread Management ──────────────────────────────────────

    def _run_in_worker(self, func, *args, **kwargs):
        self._set_busy(True)

        self.worker = WorkerThread(func, *args, **kwargs)
        self.worker.finished_signal.connect(self._on_worker_finished)
        self.worker.start()

    def _on_worker_finished(self, success: bool, message: str):
        self._set_busy(False)
        self._logger.info("Operation finished (%s): %s", "ok" if success else "failed", message)

        if success:
            self._append_log(f"✅ {message}")
        else:
            self._append_log(f"❌ {message}")
            QMessageBox.warning(self, "Operation Failed", message)

        self._refresh()

    def _set_busy(self, busy: bool):
        self.progress.setVisible(busy)
        self.status_label.setText("Working..." if busy else "Ready")
        for btn in (
            self.import_btn,
            self.delete_btn,
            self.launch_btn,
            self.clean_btn,
            self.refresh_btn,
            self.game_dir_btn,
            self.up_btn,
            self.down_btn,
            self.edit_btn,
        ):
            btn.setEnabled(not busy)

    # ── Close ─────────────────────────────────────────────────────────

    def closeEvent(self, event):
        if self.worker and self.worker.isRunning():
            reply = QMessageBox.question(
                self,
                "Operation in Progress",
                "An operation is still running. Quit anyway?",
                QMessageBox.Yes | QMessageBox.No,
            )
            if reply != QMessageBox.Yes:
                event.ignore()
                return
        self.status_timer.stop()
        event.accept()


# ── Entry Point ───────────────────────────────────────────────────────

def main(
    data_dir: Path,
    logger: logging.Logger | None = None,
    *,
    installation_path_override: str | None = None,
    window_title_suffix: str | None = None,
):
    app = QApplication(sys.argv)
    app.setStyle("Fusion")

    window = MainWindow(
        data_dir,
        logger=logger,
        installation_path_override=installation_path_override,
        window_title_suffix=window_title_suffix,
    )
    window.show()

    sys.exit(app.exec())
