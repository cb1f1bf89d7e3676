import logging
import os

from PyQt6.QtCore import QSettings, Qt
from PyQt6.QtGui import QAction, QActionGroup
from PyQt6.QtWidgets import QDockWidget, QFileDialog, QMainWindow, QStyle, QTabWidget

from engine.models import THEMES
from .chart_view import ChartView
from .error_dock import ErrorDock
from .indicator_panel import IndicatorPanel

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle('CandleView')
        self.resize(1400, 900)

        self.indicator_panel = IndicatorPanel()
        self.error_dock = ErrorDock()
        self.chart_view = ChartView(error_sink=self.error_dock, indicator_panel=self.indicator_panel)
        self.setCentralWidget(self.chart_view)

        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, self.indicator_panel)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, self.error_dock)
        self.tabifyDockWidget(self.indicator_panel, self.error_dock)
        self.setTabPosition(Qt.DockWidgetArea.RightDockWidgetArea, QTabWidget.TabPosition.East)
        self.indicator_panel.raise_()
        style = self.style()
        self.indicator_panel.setWindowIcon(style.standardIcon(QStyle.StandardPixmap.SP_FileDialogDetailedView))
        self.error_dock.setWindowIcon(style.standardIcon(QStyle.StandardPixmap.SP_MessageBoxCritical))

        self._settings = QSettings('CandleView', 'CandleView')
        self._setup_menu()
        self._restore_layout()

    def closeEvent(self, event) -> None:
        self._save_layout()
        self.chart_view.shutdown()
        super().closeEvent(event)

    def _setup_menu(self) -> None:
        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu('File')
        view_menu = menu_bar.addMenu('View')
        window_menu = menu_bar.addMenu('Window')

        export_action = QAction('Export Chart as PNG...', self)
        export_action.triggered.connect(self._export_chart_png)
        file_menu.addAction(export_action)

        reload_action = QAction('Reload History', self)
        reload_action.setShortcut('Ctrl+R')
        reload_action.triggered.connect(self.chart_view.reload)
        file_menu.addAction(reload_action)

        themes_menu = view_menu.addMenu('Theme')
        theme_group = QActionGroup(self)
        for theme in THEMES:
            action = QAction(theme.capitalize(), self)
            action.setCheckable(True)
            action.setChecked(theme == self.chart_view.engine.settings.theme)
            action.triggered.connect(lambda _checked, t=theme: self.chart_view.set_theme(t))
            theme_group.addAction(action)
            themes_menu.addAction(action)

        for dock in (self.indicator_panel, self.error_dock):
            action = QAction(dock.windowTitle(), self)
            action.setCheckable(True)
            action.setChecked(not dock.isHidden())
            action.triggered.connect(lambda checked, d=dock: self._toggle_dock(d, checked))
            dock.visibilityChanged.connect(lambda visible, a=action: a.setChecked(visible))
            window_menu.addAction(action)

    def _toggle_dock(self, dock: QDockWidget, visible: bool) -> None:
        if visible:
            dock.show()
            dock.raise_()
        else:
            dock.hide()

    def _export_chart_png(self) -> None:
        default_path = os.path.join(os.path.expanduser('~'), 'candleview.png')
        path, _ = QFileDialog.getSaveFileName(self, 'Export Chart as PNG', default_path, 'PNG Image (*.png)')
        if not path:
            return
        if not path.lower().endswith('.png'):
            path = f'{path}.png'
        if not self.chart_view.export_chart_png(path):
            logger.warning('Chart export to %s failed', path)
            self.error_dock.append_error(f'Could not write {path}')

    def _save_layout(self) -> None:
        self._settings.setValue('geometry', self.saveGeometry())
        self._settings.setValue('windowState', self.saveState())

    def _restore_layout(self) -> None:
        geometry = self._settings.value('geometry')
        window_state = self._settings.value('windowState')
        if geometry is not None:
            self.restoreGeometry(geometry)
        if window_state is not None:
            self.restoreState(window_state)
