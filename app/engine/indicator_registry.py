from __future__ import annotations

from dataclasses import dataclass
import importlib.util
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

BUILTIN_DIR = os.path.normpath(os.path.join(os.path.dirname(__file__), "..", "indicators", "builtins"))


@dataclass
class IndicatorInfo:
    indicator_id: str
    indicator_type: str
    name: str
    inputs: Dict[str, dict]
    pane: str
    path: str
    module: object
    load_error: Optional[str] = None

    def default_params(self) -> Dict[str, Any]:
        return {key: spec.get("default") for key, spec in self.inputs.items() if isinstance(spec, dict)}


# Last good definition per file path, so a broken edit does not drop an indicator.
_LAST_GOOD_BY_PATH: Dict[str, IndicatorInfo] = {}


def discover_indicators(root_paths: str | Iterable[str] = BUILTIN_DIR) -> List[IndicatorInfo]:
    indicators: List[IndicatorInfo] = []
    paths = [root_paths] if isinstance(root_paths, str) else list(root_paths)

    for root_path in paths:
        if not root_path or not os.path.isdir(root_path):
            continue
        for entry in sorted(os.listdir(root_path)):
            if not entry.endswith(".py") or entry.startswith("_"):
                continue
            path = os.path.join(root_path, entry)
            module, mod_err = _load_module_from_path(path)
            schema = _safe_schema(module) if module is not None else None
            if module is None or not schema:
                last_good = _LAST_GOOD_BY_PATH.get(path)
                error = mod_err or "schema/load failed"
                logger.warning("Indicator %s failed to load: %s", path, error)
                if last_good is not None:
                    indicators.append(
                        IndicatorInfo(
                            indicator_id=last_good.indicator_id,
                            indicator_type=last_good.indicator_type,
                            name=last_good.name,
                            inputs=last_good.inputs,
                            pane=last_good.pane,
                            path=last_good.path,
                            module=last_good.module,
                            load_error=error,
                        )
                    )
                continue
            indicator_id = str(schema.get("id") or os.path.splitext(entry)[0])
            out = IndicatorInfo(
                indicator_id=indicator_id,
                indicator_type=str(schema.get("type") or indicator_id).upper(),
                name=str(schema.get("name") or indicator_id),
                inputs=schema.get("inputs") or {},
                pane=str(schema.get("pane") or "price"),
                path=path,
                module=module,
                load_error=None,
            )
            _LAST_GOOD_BY_PATH[path] = out
            indicators.append(out)

    indicators.sort(key=lambda info: info.name.lower())
    return indicators


def registry_by_type(root_paths: str | Iterable[str] = BUILTIN_DIR) -> Dict[str, IndicatorInfo]:
    return {info.indicator_type: info for info in discover_indicators(root_paths)}


def _load_module_from_path(path: str) -> tuple[Optional[object], Optional[str]]:
    try:
        spec = importlib.util.spec_from_file_location(f"indicator_{os.path.basename(path)[:-3]}", path)
        if spec is None or spec.loader is None:
            return None, "no spec/loader"
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module, None
    except Exception as e:
        return None, f"{type(e).__name__}: {e}"


def _safe_schema(module: object) -> Optional[Dict[str, Any]]:
    try:
        schema_fn = getattr(module, "schema", None)
        if schema_fn is None:
            return None
        schema = schema_fn()
        if not isinstance(schema, dict):
            return None
        return schema
    except Exception:
        return None
