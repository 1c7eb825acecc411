"""ctxgraph - token-budgeted code context assembly.

Usage:
    from ctxgraph import ContextEngine

    package = ContextEngine().build("path/to/repo", "fix the login bug")
    print(package.render())
"""

__version__ = "0.1.0"

from ctxgraph.cancellation import CancelToken
from ctxgraph.config import ProjectConfig
from ctxgraph.context import ContextAssembler, ContextPackage
from ctxgraph.engine import ContextEngine, ProjectSnapshot
from ctxgraph.semantic import SemanticIndex

__all__ = [
    "CancelToken",
    "ContextAssembler",
    "ContextEngine",
    "ContextPackage",
    "ProjectConfig",
    "ProjectSnapshot",
    "SemanticIndex",
    "__version__",
]
