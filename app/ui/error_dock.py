import time

from PyQt6.QtGui import QTextCursor
from PyQt6.QtWidgets import QDockWidget, QTextEdit

REPEAT_WINDOW_SEC = 2.0
MAX_LINES = 500


class ErrorDock(QDockWidget):
    """Error sink for the chart engine and its workers.

    Identical messages arriving within REPEAT_WINDOW_SEC collapse into the
    previous line with a repeat count.
    """

    def __init__(self) -> None:
        super().__init__('Errors')
        self.setObjectName('ErrorDock')
        self._last_message: str = ""
        self._last_message_at: float = 0.0
        self._last_stamp: str = ""
        self._repeats = 0

        self.text = QTextEdit()
        self.text.setReadOnly(True)
        self.text.document().setMaximumBlockCount(MAX_LINES)
        self.text.setPlaceholderText('Load, stream and indicator errors will appear here.')
        self.setWidget(self.text)

    def append_error(self, message: str) -> None:
        now = time.monotonic()
        if message == self._last_message and (now - self._last_message_at) < REPEAT_WINDOW_SEC:
            self._repeats += 1
            self._last_message_at = now
            self._replace_last_line(f'{self._last_stamp} {message} (x{self._repeats + 1})')
            return
        self._last_message = message
        self._last_message_at = now
        self._last_stamp = time.strftime('[%H:%M:%S]')
        self._repeats = 0
        self.text.append(f'{self._last_stamp} {message}')

    def _replace_last_line(self, line: str) -> None:
        cursor = self.text.textCursor()
        cursor.movePosition(QTextCursor.MoveOperation.End)
        cursor.movePosition(QTextCursor.MoveOperation.StartOfBlock, QTextCursor.MoveMode.KeepAnchor)
        cursor.insertText(line)
