import logging
from typing import List, Optional

import websocket
from PyQt6.QtCore import QSettings, QThread, Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QButtonGroup,
    QComboBox,
    QCompleter,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from engine.axes import format_price
from engine.chart_engine import ChartEngine
from engine.config import ChartSettings, EngineConfig
from engine.data_providers import binance
from engine.errors import ChartEngineError
from engine.models import CHART_TYPES, THEMES
from engine.timeframes import TIMEFRAMES
from .charts.chart_widget import ChartWidget

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = 'BTCUSDT'
DEFAULT_SYMBOLS = ['BTCUSDT', 'ETHUSDT', 'SOLUSDT', 'BNBUSDT', 'XRPUSDT']


class HistoricalFetchWorker(QThread):
    data_ready = pyqtSignal(int, list)
    error = pyqtSignal(int, str)

    def __init__(self, token: int, symbol: str, timeframe: str, limit: int) -> None:
        super().__init__()
        self.token = token
        self.symbol = symbol
        self.timeframe = timeframe
        self.limit = limit

    def run(self) -> None:
        try:
            bars = binance.fetch_historical(self.symbol, self.timeframe, self.limit)
            self.data_ready.emit(self.token, bars)
        except Exception as exc:
            self.error.emit(self.token, f'{self.symbol} {self.timeframe}: history fetch failed ({exc})')


class SymbolFetchWorker(QThread):
    data_ready = pyqtSignal(list)
    error = pyqtSignal(str)

    def run(self) -> None:
        try:
            self.data_ready.emit(binance.fetch_symbols())
        except Exception as exc:
            self.error.emit(f'Symbol list fetch failed: {exc}')


class LiveTradeWorker(QThread):
    trade = pyqtSignal(str, object)
    error = pyqtSignal(str)

    def __init__(self, symbol: str) -> None:
        super().__init__()
        self.symbol = symbol
        self._stop = False
        self._ws = None

    def stop(self) -> None:
        self._stop = True
        if self._ws is not None:
            self._ws.close()

    def run(self) -> None:
        def on_message(ws, message):
            if self._stop:
                return
            try:
                tick = binance.parse_trade_message(message)
            except ChartEngineError as exc:
                self.error.emit(f'{self.symbol}: bad trade message ({exc})')
                return
            if tick is not None:
                self.trade.emit(self.symbol, tick)

        def on_error(ws, err):
            if not self._stop:
                self.error.emit(f'{self.symbol} stream: {err}')

        self._ws = websocket.WebSocketApp(binance.trade_stream_url(self.symbol), on_message=on_message, on_error=on_error)
        while not self._stop:
            self._ws.run_forever(ping_interval=20, ping_timeout=10)


class ChartView(QWidget):
    def __init__(self, error_sink=None, indicator_panel=None, config: Optional[EngineConfig] = None) -> None:
        super().__init__()
        self.error_sink = error_sink
        self.indicator_panel = indicator_panel
        self._settings = QSettings('CandleView', 'CandleView')
        settings = ChartSettings(
            grid_lines=self._settings.value('chart/grid', True, type=bool),
            show_volume=self._settings.value('chart/volume', True, type=bool),
            theme=self._setting_choice('chart/theme', THEMES, 'dark'),
            chart_type=self._setting_choice('chart/chartType', CHART_TYPES, 'candlestick'),
        )
        symbol = str(self._settings.value('chart/symbol', DEFAULT_SYMBOL) or DEFAULT_SYMBOL)
        timeframe = self._setting_choice('chart/timeframe', TIMEFRAMES, '1m')
        self.engine = ChartEngine(symbol, timeframe, settings=settings, config=config, error_sink=error_sink)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)
        layout.addWidget(self._build_toolbar())
        self.chart = ChartWidget(self.engine, self)
        self.chart.state_changed.connect(self._update_header)
        layout.addWidget(self.chart, 1)

        self._fetch_workers: List[HistoricalFetchWorker] = []
        self._symbol_worker: Optional[SymbolFetchWorker] = None
        self._trade_worker: Optional[LiveTradeWorker] = None

        if indicator_panel is not None:
            indicator_panel.set_available_indicators(
                [(info.indicator_type, info.name) for info in self.engine.indicators.registry.values()]
            )
            indicator_panel.indicator_add_requested.connect(self._add_indicator)
            indicator_panel.indicator_visibility_toggled.connect(self._toggle_indicator)
            indicator_panel.indicator_remove_requested.connect(self._remove_indicator)

        self._load_symbols()
        self._start_load()

    def _setting_choice(self, key: str, choices, default: str) -> str:
        value = str(self._settings.value(key, default) or default)
        return value if value in choices else default

    # -- toolbar ----------------------------------------------------------

    def _build_toolbar(self) -> QWidget:
        toolbar = QWidget()
        toolbar.setObjectName('TopToolbar')
        row = QHBoxLayout(toolbar)
        row.setContentsMargins(6, 6, 6, 4)
        row.setSpacing(6)

        self.symbol_box = QComboBox()
        self.symbol_box.setEditable(True)
        self.symbol_box.setInsertPolicy(QComboBox.InsertPolicy.NoInsert)
        self.symbol_box.setMinimumWidth(160)
        self.symbol_box.addItems(DEFAULT_SYMBOLS)
        self.symbol_box.setCurrentText(self.engine.symbol)
        self.symbol_box.lineEdit().returnPressed.connect(self._on_symbol_entered)
        self.symbol_box.activated.connect(lambda _idx: self._on_symbol_entered())
        row.addWidget(self.symbol_box)

        self.timeframe_group = QButtonGroup(self)
        self.timeframe_group.setExclusive(True)
        self.timeframe_buttons = {}
        for tf in TIMEFRAMES:
            button = QPushButton(tf)
            button.setCheckable(True)
            button.setMinimumHeight(22)
            button.clicked.connect(lambda _checked, val=tf: self._set_timeframe(val))
            self.timeframe_group.addButton(button)
            self.timeframe_buttons[tf] = button
            row.addWidget(button)
        self.timeframe_buttons[self.engine.timeframe].setChecked(True)

        self.chart_type_box = QComboBox()
        self.chart_type_box.addItems(list(CHART_TYPES))
        self.chart_type_box.setCurrentText(self.engine.settings.chart_type)
        self.chart_type_box.currentTextChanged.connect(self._set_chart_type)
        row.addWidget(self.chart_type_box)

        self.grid_button = self._toggle_button('Grid', self.engine.settings.grid_lines, self._toggle_grid)
        row.addWidget(self.grid_button)
        self.volume_button = self._toggle_button('Volume', self.engine.settings.show_volume, self._toggle_volume)
        row.addWidget(self.volume_button)

        self.theme_box = QComboBox()
        self.theme_box.addItems(list(THEMES))
        self.theme_box.setCurrentText(self.engine.settings.theme)
        self.theme_box.currentTextChanged.connect(self.set_theme)
        row.addWidget(self.theme_box)

        self.retry_button = QPushButton('Retry')
        self.retry_button.setVisible(False)
        self.retry_button.clicked.connect(self.reload)
        row.addWidget(self.retry_button)

        self.header_label = QLabel('')
        self.header_label.setObjectName('ChartHeader')
        row.addStretch(1)
        row.addWidget(self.header_label)
        return toolbar

    def _toggle_button(self, label: str, checked: bool, slot) -> QPushButton:
        button = QPushButton(label)
        button.setCheckable(True)
        button.setChecked(checked)
        button.toggled.connect(slot)
        return button

    def _on_symbol_entered(self) -> None:
        symbol = self.symbol_box.currentText().strip().upper()
        if not symbol or symbol == self.engine.symbol:
            return
        self.engine.set_symbol(symbol)
        self._settings.setValue('chart/symbol', symbol)
        self._start_load()

    def _set_timeframe(self, timeframe: str) -> None:
        if timeframe == self.engine.timeframe:
            return
        self.engine.set_timeframe(timeframe)
        self._settings.setValue('chart/timeframe', timeframe)
        self._start_load()

    def _set_chart_type(self, chart_type: str) -> None:
        self.engine.set_chart_type(chart_type)
        self._settings.setValue('chart/chartType', chart_type)
        self.chart.refresh()

    def _toggle_grid(self, checked: bool) -> None:
        self.engine.toggle_grid(checked)
        self._settings.setValue('chart/grid', checked)
        self.chart.refresh()

    def _toggle_volume(self, checked: bool) -> None:
        self.engine.toggle_volume(checked)
        self._settings.setValue('chart/volume', checked)
        self.chart.refresh()

    def set_theme(self, theme: str) -> None:
        self.engine.set_theme(theme)
        self._settings.setValue('chart/theme', theme)
        if self.theme_box.currentText() != theme:
            self.theme_box.setCurrentText(theme)
        self.chart.refresh()

    # -- indicators -------------------------------------------------------

    def _add_indicator(self, indicator_type: str) -> None:
        self.engine.add_indicator(indicator_type)
        self._sync_indicator_panel()
        self.chart.refresh()

    def _toggle_indicator(self, indicator_id: str, visible: bool) -> None:
        self.engine.toggle_indicator(indicator_id, visible)
        self._sync_indicator_panel()
        self.chart.refresh()

    def _remove_indicator(self, indicator_id: str) -> None:
        self.engine.remove_indicator(indicator_id)
        self._sync_indicator_panel()
        self.chart.refresh()

    def _sync_indicator_panel(self) -> None:
        if self.indicator_panel is None:
            return
        results = self.engine.indicator_results()
        entries = []
        for ind in self.engine.indicators.indicators:
            result = results.get(ind.id)
            entries.append({
                'id': ind.id,
                'name': ind.name,
                'visible': ind.visible,
                'available': bool(result and result.available),
                'error': result.error if result else '',
            })
        self.indicator_panel.set_indicator_instances(entries)

    # -- data -------------------------------------------------------------

    def reload(self) -> None:
        self._start_load()

    def _start_load(self) -> None:
        self._stop_live()
        token = self.engine.begin_load()
        worker = HistoricalFetchWorker(token, self.engine.symbol, self.engine.timeframe, self.engine.config.history_limit)
        worker.data_ready.connect(self._on_history)
        worker.error.connect(self._on_history_error)
        worker.finished.connect(lambda w=worker: self._forget_worker(w))
        self._fetch_workers.append(worker)
        worker.start()
        self._update_header()

    def _forget_worker(self, worker: HistoricalFetchWorker) -> None:
        if worker in self._fetch_workers:
            self._fetch_workers.remove(worker)

    def _on_history(self, token: int, bars: list) -> None:
        if not self.engine.complete_load(token, bars):
            self._update_header()
            return
        self._sync_indicator_panel()
        self._start_live()
        self.chart.refresh()

    def _on_history_error(self, token: int, message: str) -> None:
        self.engine.fail_load(token, message)
        self.chart.refresh()

    def _load_symbols(self) -> None:
        self._symbol_worker = SymbolFetchWorker()
        self._symbol_worker.data_ready.connect(self._on_symbols)
        self._symbol_worker.error.connect(self._report_error)
        self._symbol_worker.start()

    def _on_symbols(self, symbols: list) -> None:
        completer = QCompleter(symbols, self)
        completer.setCaseSensitivity(Qt.CaseSensitivity.CaseInsensitive)
        completer.setFilterMode(Qt.MatchFlag.MatchContains)
        self.symbol_box.setCompleter(completer)

    def _start_live(self) -> None:
        self._stop_live()
        self._trade_worker = LiveTradeWorker(self.engine.symbol)
        self._trade_worker.trade.connect(self._on_trade)
        self._trade_worker.error.connect(self._report_error)
        self._trade_worker.start()

    def _stop_live(self) -> None:
        if self._trade_worker is not None:
            self._trade_worker.stop()
            self._trade_worker.wait(1500)
            self._trade_worker = None

    def _on_trade(self, symbol: str, tick) -> None:
        self.chart.push_tick(tick, symbol)

    def _report_error(self, message: str) -> None:
        logger.warning('%s', message)
        if self.error_sink is not None:
            self.error_sink.append_error(message)

    def _update_header(self) -> None:
        summary = self.engine.summary()
        state = self.engine.load_state
        self.retry_button.setVisible(state.can_retry)
        if state.status == 'loading':
            self.header_label.setText(f"{summary['symbol']}  {summary['timeframe']}  loading...")
            return
        if state.status == 'error':
            self.header_label.setText(f"{summary['symbol']}  {summary['timeframe']}  {state.message}")
            return
        if summary['last'] is None:
            self.header_label.setText(f"{summary['symbol']}  {summary['timeframe']}  no data")
            return
        change = summary['change']
        sign = '+' if change >= 0 else ''
        color = '#22C55E' if change >= 0 else '#EF5350'
        self.header_label.setText(
            f"{summary['symbol']}  {summary['timeframe']}  {format_price(summary['last'])}  "
            f"<span style='color:{color}'>{sign}{format_price(change)} ({sign}{summary['change_pct']:.2f}%)</span>"
        )

    def export_chart_png(self, path: str) -> bool:
        return self.chart.grab_image().save(path, 'PNG')

    def shutdown(self) -> None:
        self._stop_live()
        for worker in list(self._fetch_workers):
            worker.wait(1500)
        if self._symbol_worker and self._symbol_worker.isRunning():
            self._symbol_worker.wait(1500)
