import os
import faulthandler
import logging
import sys
import traceback
from PyQt6.QtWidgets import QApplication
from PyQt6.QtGui import QIcon
from ui.main_window import MainWindow

_FAULT_LOG_HANDLE = None
_APP_DIR = os.path.dirname(__file__)


def _configure_logging() -> None:
    level = os.environ.get('CANDLEVIEW_LOG_LEVEL', 'INFO').upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(_APP_DIR, 'app.log'), mode='w', encoding='utf-8'),
        ],
    )
    # urllib3 logs every request at DEBUG; websocket logs reconnect noise at INFO.
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('websocket').setLevel(logging.WARNING)


def _install_exception_logging() -> None:
    log_path = os.path.join(_APP_DIR, "exception.log")
    logger = logging.getLogger('candleview')

    def _hook(exc_type, exc_value, exc_tb):
        logger.critical('Unhandled exception', exc_info=(exc_type, exc_value, exc_tb))
        with open(log_path, "a", encoding="utf-8") as handle:
            handle.write("\n=== Unhandled Exception ===\n")
            traceback.print_exception(exc_type, exc_value, exc_tb, file=handle)

    sys.excepthook = _hook

    import threading

    def _thread_hook(args):
        _hook(args.exc_type, args.exc_value, args.exc_traceback)

    threading.excepthook = _thread_hook


def main():
    _configure_logging()
    try:
        log_path = os.path.join(_APP_DIR, "faulthandler.log")
        # Keep the handle alive for the process lifetime; faulthandler may write later.
        global _FAULT_LOG_HANDLE
        _FAULT_LOG_HANDLE = open(log_path, "w", encoding="utf-8")
        _FAULT_LOG_HANDLE.write(f"pid={os.getpid()}\n")
        _FAULT_LOG_HANDLE.flush()
        faulthandler.enable(_FAULT_LOG_HANDLE, all_threads=True)
    except OSError:
        faulthandler.enable(all_threads=True)
    _install_exception_logging()
    app = QApplication(sys.argv)
    app.setApplicationName('CandleView')
    qss_path = os.path.join(_APP_DIR, 'ui', 'theme', 'app.qss')
    if os.path.exists(qss_path):
        with open(qss_path, 'r', encoding='utf-8') as handle:
            app.setStyleSheet(handle.read())
    icon_path = os.path.join(_APP_DIR, 'ui', 'theme', 'candleview.png')
    if os.path.exists(icon_path):
        app.setWindowIcon(QIcon(icon_path))
    window = MainWindow()
    window.show()
    sys.exit(app.exec())


if __name__ == '__main__':
    main()
