"""Signal source adapters."""

from .demo import DemoSignalSource
from .edge_functions import EdgeFunctionSource
from .llm import TileAnalyzer, extract_json_text, safe_json_loads

__all__ = [
    "DemoSignalSource",
    "EdgeFunctionSource",
    "TileAnalyzer",
    "extract_json_text",
    "safe_json_loads",
]
