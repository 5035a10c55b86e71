from .errors import (
    NsFixError, ConfigError, FileReadError, FileWriteError,
    TextMismatchError, UnresolvableAmbiguity, OverlappingEditError, NoSelectionError,
)
from .config import NsFixConfig, load_config
from .locale_store import LocaleStore
from .optimizer import NamespaceOptimizer, AnalysisResult, ApplyResult

__version__ = "0.3.0"
