"""repograph: structural file/function graphs for source repositories."""

__version__ = "0.1.0"

from .models import AnalysisResult, AliasEntry, Progress
from .pipeline import analyze

__all__ = ["AnalysisResult", "AliasEntry", "Progress", "analyze", "__version__"]
