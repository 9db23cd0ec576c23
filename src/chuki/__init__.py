from .core import BookMetadata, ConversionContext, Converter, ConverterOptions
from .forward import resolve_forward_references
from .gaiji import AccentDecomposer, CodeGaijiResolver, convert_gaiji
from .glyphs import CharacterMapper
from .logging_utils import ChukiWarning, set_debug_logging
from .ruby import RubyAnalyzer
from .tables import (
    AnnotationDictionary,
    ConversionTables,
    ForwardReferenceDictionary,
    load_tables,
)
from .tokens import tokenize_line

__all__ = [
    "AccentDecomposer",
    "AnnotationDictionary",
    "BookMetadata",
    "CharacterMapper",
    "ChukiWarning",
    "CodeGaijiResolver",
    "ConversionContext",
    "ConversionTables",
    "Converter",
    "ConverterOptions",
    "ForwardReferenceDictionary",
    "RubyAnalyzer",
    "convert_gaiji",
    "load_tables",
    "resolve_forward_references",
    "set_debug_logging",
    "tokenize_line",
]
