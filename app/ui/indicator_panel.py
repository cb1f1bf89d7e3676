from typing import Dict, List, Optional, Tuple

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QDockWidget,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QVBoxLayout,
    QWidget,
)


class IndicatorPanel(QDockWidget):
    indicator_add_requested = pyqtSignal(str)
    indicator_remove_requested = pyqtSignal(str)
    indicator_visibility_toggled = pyqtSignal(str, bool)

    def __init__(self) -> None:
        super().__init__('Indicators')
        self.setObjectName('IndicatorPanel')
        self._instances: Dict[str, dict] = {}
        self._active_instance_id: Optional[str] = None

        container = QWidget()
        layout = QVBoxLayout(container)

        layout.addWidget(QLabel('Available Indicators'))
        self.indicator_list = QListWidget()
        self.indicator_list.itemDoubleClicked.connect(self._on_available_double_clicked)
        layout.addWidget(self.indicator_list)

        layout.addWidget(QLabel('Active Indicators'))
        self.active_list = QListWidget()
        self.active_list.itemSelectionChanged.connect(self._on_active_selected)
        layout.addWidget(self.active_list)

        self._controls_row = QWidget()
        controls_layout = QHBoxLayout(self._controls_row)
        controls_layout.setContentsMargins(0, 0, 0, 0)
        controls_layout.setSpacing(6)
        self.visibility_button = QPushButton('Hide')
        self.visibility_button.clicked.connect(self._toggle_visibility)
        self.remove_button = QPushButton('Remove')
        self.remove_button.clicked.connect(self._remove_instance)
        controls_layout.addWidget(self.visibility_button)
        controls_layout.addWidget(self.remove_button)
        controls_layout.addStretch(1)
        layout.addWidget(self._controls_row)

        self.status_label = QLabel('Double-click an indicator to add it.')
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

        self.setWidget(container)
        self._controls_row.setEnabled(False)

    def set_available_indicators(self, indicators: List[Tuple[str, str]]) -> None:
        self.indicator_list.clear()
        for indicator_type, name in indicators:
            item = QListWidgetItem(name)
            item.setData(Qt.ItemDataRole.UserRole, indicator_type)
            self.indicator_list.addItem(item)

    def set_indicator_instances(self, instances: List[dict]) -> None:
        self._instances = {item['id']: item for item in instances}
        self.active_list.blockSignals(True)
        self.active_list.clear()
        for info in instances:
            label = info.get('name') or info['id']
            if not info.get('visible', True):
                label += ' (hidden)'
            if not info.get('available', True):
                label += ' (unavailable)'
            item = QListWidgetItem(label)
            item.setData(Qt.ItemDataRole.UserRole, info['id'])
            if info.get('error'):
                item.setToolTip(info['error'])
            self.active_list.addItem(item)
        self.active_list.blockSignals(False)

        if self._active_instance_id in self._instances:
            self._select_instance_in_list(self._active_instance_id)
        elif instances:
            self.active_list.setCurrentRow(0)
        else:
            self._clear_selection()

    def _select_instance_in_list(self, instance_id: str) -> None:
        for idx in range(self.active_list.count()):
            item = self.active_list.item(idx)
            if item.data(Qt.ItemDataRole.UserRole) == instance_id:
                self.active_list.setCurrentRow(idx)
                self._on_active_selected()
                return

    def _on_available_double_clicked(self, item: QListWidgetItem) -> None:
        indicator_type = item.data(Qt.ItemDataRole.UserRole)
        if indicator_type:
            self.indicator_add_requested.emit(str(indicator_type))

    def _on_active_selected(self) -> None:
        item = self.active_list.currentItem()
        instance_id = item.data(Qt.ItemDataRole.UserRole) if item is not None else None
        if not instance_id or instance_id not in self._instances:
            self._clear_selection()
            return
        self._active_instance_id = instance_id
        instance = self._instances[instance_id]
        self._controls_row.setEnabled(True)
        self.visibility_button.setText('Hide' if instance.get('visible', True) else 'Show')
        self.status_label.setText(instance.get('error') or 'Double-click an indicator to add it.')

    def _clear_selection(self) -> None:
        self._active_instance_id = None
        self._controls_row.setEnabled(False)
        self.status_label.setText('Double-click an indicator to add it.')

    def _toggle_visibility(self) -> None:
        instance = self._instances.get(self._active_instance_id or '')
        if not instance:
            return
        self.indicator_visibility_toggled.emit(instance['id'], not bool(instance.get('visible', True)))

    def _remove_instance(self) -> None:
        if not self._active_instance_id:
            return
        self.indicator_remove_requested.emit(self._active_instance_id)
