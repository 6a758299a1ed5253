"""Template compilation and rendering on top of the asset client."""

from .engine import RenderedAsset, Template, TemplateEngine, TemplateList, build_template_engine
from .functions import FunctionRegistry
from .validator import ValidationError, ValidationResult, VariableValidator

__all__ = [
    "FunctionRegistry",
    "RenderedAsset",
    "Template",
    "TemplateEngine",
    "TemplateList",
    "ValidationError",
    "ValidationResult",
    "VariableValidator",
    "build_template_engine",
]
