# ui_main.py
import os
import re
from PyQt6.QtWidgets import QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel, QLineEdit, QFileDialog, QProgressBar, QTextEdit, QMessageBox, QSizePolicy
from PyQt6.QtCore import QThread, pyqtSignal
from PyQt6.QtGui import QTextCursor
from config import storage_endpoint, auth_headers
from transport import Transport
from uploader import upload_items, _is_hidden


def format_size(bytes_value):
    if bytes_value < 1024:
        return f"{bytes_value:.1f} B"
    kb = bytes_value / 1024
    if kb < 1024:
        return f"{kb:.1f} KB"
    mb = kb / 1024
    if mb < 1024:
        return f"{mb:.1f} MB"
    gb = mb / 1024
    return f"{gb:.2f} GB"


def format_time(seconds):
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds} s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} min {seconds % 60} s"
    hours = minutes // 60
    minutes = minutes % 60
    secs = seconds % 60
    return f"{hours} h {minutes} m {secs} s"


def format_log_message(message: str) -> str:
    """Convert raw byte values in uploader logs to human-readable units."""
    def format_bytes(match):
        num = int(match.group(1))
        if num < 1024:
            return f"{num} B"
        elif num < 1024 ** 2:
            return f"{num / 1024:.1f} KB"
        elif num < 1024 ** 3:
            return f"{num / (1024 ** 2):.1f} MB"
        else:
            return f"{num / (1024 ** 3):.2f} GB"
    return re.sub(r"(\d+) B\b", format_bytes, message)


def expand_selection(selected):
    """Flatten chosen files and folders into a file list, skipping hidden entries."""
    all_files = []
    for path in selected:
        if _is_hidden(os.path.basename(path)):
            continue
        if not os.path.isdir(path):
            all_files.append(path)
            continue
        for root, dirs, files in os.walk(path):
            for fname in files:
                if _is_hidden(fname):
                    continue
                all_files.append(os.path.join(root, fname))
    return all_files


def files_base_dir(paths):
    """Folder that picked files are named relative to; its name becomes the remote root."""
    if len(paths) == 1:
        return os.path.dirname(paths[0])
    common = os.path.commonpath(paths)
    # several picks from one folder: commonpath is that folder itself
    return common if os.path.isdir(common) else os.path.dirname(common)


class UploadWorker(QThread):
    # progress: (uploaded_bytes, total_bytes, speed_bytes_per_sec, eta_seconds)
    progress = pyqtSignal(float, float, float, float)
    log = pyqtSignal(str)
    finished = pyqtSignal(bool)

    def __init__(self, selected_paths, base_dir, bucket, cfg, transport):
        super().__init__()
        self.selected_paths = selected_paths
        self.base_dir = base_dir
        self.bucket = bucket
        self.cfg = cfg
        self.transport = transport
        self._stop = False

    def request_stop(self):
        self._stop = True

    def run(self):
        try:
            def progress_cb(uploaded_bytes, total_bytes, speed_bytes_per_sec=None, eta_seconds=None):
                self.progress.emit(
                    float(uploaded_bytes),
                    float(total_bytes),
                    float(speed_bytes_per_sec or 0),
                    float(eta_seconds or 0)
                )
            report = upload_items(
                self.selected_paths,
                self.bucket,
                self.transport,
                storage_endpoint(self.cfg),
                base_dir=self.base_dir,
                remote_base=self.cfg.get("remote_base", ""),
                upsert=bool(self.cfg.get("upsert")),
                chunk_size=int(self.cfg["chunk_size"]),
                max_attempts=int(self.cfg["max_attempts"]),
                retry_delay=float(self.cfg["retry_delay"]),
                progress_cb=progress_cb,
                log_cb=self.log.emit,
                should_stop=lambda: self._stop
            )
            self.finished.emit(report.ok)
        except Exception:
            import traceback
            self.log.emit("ERROR:\n" + traceback.format_exc())
            self.finished.emit(False)


class MainWindow(QWidget):
    MAX_LOG_LINES = 1000

    def __init__(self, cfg):
        super().__init__()
        self.cfg = cfg
        # one transport for the whole app; its semaphore caps requests in flight
        self.transport = Transport(base_headers=auth_headers(cfg), max_concurrent=int(cfg["max_concurrent"]))
        self.setWindowTitle("Supabase Uploader")
        self.resize(800, 600)
        self.layout = QVBoxLayout()
        # target area
        target_layout = QHBoxLayout()
        target_layout.addWidget(QLabel("Bucket:"))
        self.txt_bucket = QLineEdit(cfg["bucket"])
        target_layout.addWidget(self.txt_bucket, 1)
        # folder area
        folder_layout = QHBoxLayout()
        folder_btn_layout = QVBoxLayout()
        self.lbl_folder = QLabel("No files selected")
        self.lbl_folder.setSizePolicy(QSizePolicy.Policy.Ignored, QSizePolicy.Policy.Preferred)
        folder_layout.setContentsMargins(0, 0, 0, 0)
        self.btn_choose_files = QPushButton("Choose Files")
        self.btn_choose_folder = QPushButton("Choose Folder")
        folder_btn_layout.addWidget(self.btn_choose_files)
        folder_btn_layout.addWidget(self.btn_choose_folder)
        folder_layout.addWidget(self.lbl_folder, 2)
        folder_layout.addLayout(folder_btn_layout, 1)
        # controls
        ctrl_layout = QHBoxLayout()
        self.btn_start = QPushButton("Start Upload")
        self.btn_stop = QPushButton("Stop")
        self.btn_stop.setEnabled(False)
        ctrl_layout.addWidget(self.btn_start)
        ctrl_layout.addWidget(self.btn_stop)
        # progress & log
        self.progress = QProgressBar()
        self.lbl_status = QLabel("Speed: 0 MB/s | 0 / 0 MB | ETA: 0 s")
        self.log = QTextEdit()
        self.log.setReadOnly(True)
        # assemble
        self.layout.addLayout(target_layout)
        self.layout.addLayout(folder_layout, 1)
        self.layout.addLayout(ctrl_layout)
        self.layout.addWidget(self.progress)
        self.layout.addWidget(self.lbl_status)
        self.layout.addWidget(self.log)
        self.setLayout(self.layout)
        # signals
        self.btn_choose_files.clicked.connect(self.choose_files)
        self.btn_choose_folder.clicked.connect(self.choose_folder)
        self.btn_start.clicked.connect(self.start_upload)
        self.btn_stop.clicked.connect(self.stop_upload)
        self.worker = None
        self.selected_paths = []
        self.base_dir = ""
        self.total_bytes = 0

    def _append_log(self, message: str):
        """Append formatted log efficiently and trim to last MAX_LOG_LINES lines."""
        cursor = self.log.textCursor()
        cursor.movePosition(QTextCursor.MoveOperation.End)
        cursor.insertText(format_log_message(message) + "\n")
        self.log.setTextCursor(cursor)
        self.log.ensureCursorVisible()
        doc = self.log.document()
        if doc.blockCount() > self.MAX_LOG_LINES:
            extra = doc.blockCount() - self.MAX_LOG_LINES
            b = doc.begin()
            cur = self.log.textCursor()
            cur.beginEditBlock()
            while extra > 0 and b.isValid():
                nxt = b.next()
                cur.setPosition(b.position())
                cur.movePosition(QTextCursor.MoveOperation.EndOfBlock, QTextCursor.MoveMode.KeepAnchor)
                cur.movePosition(QTextCursor.MoveOperation.Right, QTextCursor.MoveMode.KeepAnchor)  # include newline
                cur.removeSelectedText()
                extra -= 1
                b = nxt
            cur.endEditBlock()

    def choose_files(self):
        paths, _ = QFileDialog.getOpenFileNames(self, "Choose files to upload")
        if paths:
            self._set_selection(paths, files_base_dir(paths))

    def choose_folder(self):
        path = QFileDialog.getExistingDirectory(self, "Choose a folder to upload")
        if path:
            self._set_selection([path], path)

    def _set_selection(self, selected, base_dir):
        self.selected_paths = expand_selection(selected)
        if not self.selected_paths:
            self.lbl_folder.setText("No files selected")
            return
        self.base_dir = base_dir
        self._full_list = [os.path.basename(p) + ("/" if os.path.isdir(p) else "") for p in selected]
        self._label_prefix = f"Selected ({len(self.selected_paths)} files): "
        self.update_folder_label()
        self.total_bytes = sum(os.path.getsize(p) for p in self.selected_paths if os.path.isfile(p))
        self._append_log(f"Total upload size: {format_size(self.total_bytes)}")

    def update_folder_label(self):
        full_list = getattr(self, '_full_list', [])
        prefix = getattr(self, '_label_prefix', '')
        available_width = self.lbl_folder.width()
        if available_width <= 0:
            available_width = self.lbl_folder.sizeHint().width()
        metrics = self.lbl_folder.fontMetrics()
        text = prefix + ", ".join(full_list)
        if metrics.horizontalAdvance(text) <= available_width:
            self.lbl_folder.setText(text)
            return
        # too long: keep some items from the start and end around an ellipsis
        ellipsis = "..."
        left_items = []
        for item in full_list:
            test = prefix + ", ".join(left_items + [item]) + ", " + ellipsis
            if metrics.horizontalAdvance(test) < available_width / 2:
                left_items.append(item)
            else:
                break
        right_items = []
        for item in reversed(full_list[len(left_items):]):
            test_text = prefix + ", ".join(left_items + [ellipsis] + right_items + [item])
            if metrics.horizontalAdvance(test_text) <= available_width:
                right_items.insert(0, item)
            else:
                break
        if not left_items and not right_items:
            self.lbl_folder.setText(prefix.rstrip(": "))
            return
        self.lbl_folder.setText(prefix + ", ".join(left_items + [ellipsis] + right_items))

    def resizeEvent(self, event):
        super().resizeEvent(event)
        if hasattr(self, '_full_list'):
            self.update_folder_label()

    def start_upload(self):
        if not self.selected_paths:
            QMessageBox.warning(self, "No selection", "Choose a file or folder first")
            return
        bucket = self.txt_bucket.text().strip()
        if not bucket:
            QMessageBox.warning(self, "No bucket", "Enter a bucket name")
            return
        # one upload task at a time
        if self.worker and self.worker.isRunning():
            QMessageBox.warning(self, "Busy", "An upload task is still running.")
            return

        self.btn_start.setEnabled(False)
        self.btn_stop.setEnabled(True)

        self.worker = UploadWorker(self.selected_paths, self.base_dir, bucket, self.cfg, self.transport)
        self.worker.progress.connect(self.on_progress)
        self.worker.log.connect(self._append_log)
        self.worker.finished.connect(self.on_finished)
        self.worker.start()
        self._append_log("Upload started")

    def stop_upload(self):
        if self.worker and self.worker.isRunning():
            self.worker.request_stop()
            self._append_log("Stopping... waiting for the current request to finish")
        self.btn_stop.setEnabled(False)

    def on_progress(self, uploaded, _ignored_total, speed=0, eta=0):
        total = self.total_bytes or _ignored_total or 0
        if total > 0:
            pct = int(uploaded * 100 / total)
            if pct != self.progress.value():
                self.progress.setValue(pct)
            mbps = (speed or 0) / (1024 * 1024)
            eta_str = format_time(eta) if eta and eta > 0 else "--"
            self.lbl_status.setText(
                f"{format_size(uploaded)} / {format_size(total)} | {mbps:.2f} MB/s | ETA: {eta_str}"
            )
        else:
            self.progress.setValue(0)
            self.lbl_status.setText("Speed: 0 MB/s | 0 / 0 | ETA: 0 s")

    def on_finished(self, ok):
        self.btn_start.setEnabled(True)
        self.btn_stop.setEnabled(False)
        self._append_log("Upload finished" if ok else "Upload ended with errors")
        if self.worker:
            self.worker.deleteLater()
            self.worker = None

    def closeEvent(self, event):
        if self.worker and self.worker.isRunning():
            self.worker.request_stop()
            self.worker.wait()
        self.transport.close()
        super().closeEvent(event)
