from .base import BackendClient, BackendError, BackendErrorKind
from .formatter import FormatterClient
from .graph_query import GraphQueryClient, QueryResult
from .translator import TranslatorClient

__all__ = [
    "BackendClient",
    "BackendError",
    "BackendErrorKind",
    "FormatterClient",
    "GraphQueryClient",
    "QueryResult",
    "TranslatorClient",
]
