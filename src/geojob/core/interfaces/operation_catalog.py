from abc import ABC, abstractmethod
from typing import List, Optional

from geojob.core.models.job import OperationKind
from geojob.core.models.operations_config import OperationConfig


class OperationCatalogPort(ABC):
    @abstractmethod
    def load_operations(self) -> None:
        """Load or reload operation configurations from the source"""
        pass

    @abstractmethod
    def get_operation(self, kind: OperationKind) -> Optional[OperationConfig]:
        pass

    @abstractmethod
    def list_operations(self) -> List[OperationConfig]:
        pass

    @abstractmethod
    def known_output_names(self, kind: OperationKind) -> List[str]:
        """Output parameter names the decoder may unwrap for this operation."""
        pass
