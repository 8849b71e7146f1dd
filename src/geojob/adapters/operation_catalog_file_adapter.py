import threading
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from geojob.core.interfaces.operation_catalog import OperationCatalogPort
from geojob.core.models.job import OperationKind
from geojob.core.models.operations_config import OperationConfig, OperationsConfig
from geojob.core.settings import logger


class OperationCatalogFileAdapter(OperationCatalogPort):
    """Operation catalog backed by built-in defaults plus an optional YAML file.

    File entries replace defaults of the same kind. A broken file is logged
    and leaves the previous catalog in place.

    Example file::

        operations:
          - kind: viewshed
            task-url: https://gis.example.org/arcgis/rest/services/Elevation/GPServer/Viewshed
            output-params: [OutputViewshed, OutputPolygons]
            output:
              kind: feature_collection
              param_name: OutputViewshed
            authentication:
              type: ApiKey
              key: abc123
    """

    def __init__(self, config_path: str | Path | None = None, defaults: OperationsConfig | None = None):
        self._config_path = Path(config_path) if config_path else None
        self._defaults = defaults or OperationsConfig(operations=[])
        self._lock = threading.Lock()
        self._operations: dict[OperationKind, OperationConfig] = {}

        self.load_operations()

    def _atomic_update(self, new_operations: List[OperationConfig]) -> None:
        merged = {op.kind: op.model_copy(deep=True) for op in self._defaults.operations}
        for op in new_operations:
            merged[op.kind] = op.model_copy(deep=True)
        with self._lock:
            self._operations = merged

    def load_operations(self) -> None:
        if self._config_path is None:
            self._atomic_update([])
            logger.debug("[catalog] using %d built-in operations", len(self._defaults.operations))
            return

        logger.info("(Re)Loading operations from %s", self._config_path)
        try:
            with open(self._config_path, encoding="UTF-8") as file:
                content = yaml.safe_load(file)
            validated = OperationsConfig(**content) if content else OperationsConfig(operations=[])
            self._atomic_update(validated.operations)
            logger.info("Operations (re)loaded successfully count=%d", len(self._operations))
        except FileNotFoundError:
            logger.error("Operations file not found: %s", self._config_path)
            if not self._operations:
                self._atomic_update([])
        except yaml.YAMLError as e:
            logger.error("Failed to parse operations file: %s", e)
            if not self._operations:
                self._atomic_update([])
        except ValidationError as e:
            logger.error("Validation error in operations file: %s", e)
            if not self._operations:
                self._atomic_update([])

    def get_operation(self, kind: OperationKind) -> Optional[OperationConfig]:
        with self._lock:
            return self._operations.get(kind)

    def list_operations(self) -> List[OperationConfig]:
        with self._lock:
            return list(self._operations.values())

    def known_output_names(self, kind: OperationKind) -> List[str]:
        op = self.get_operation(kind)
        if op is None:
            return []
        names = list(op.output_params)
        if op.output and op.output.param_name and op.output.param_name not in names:
            names.insert(0, op.output.param_name)
        return names
