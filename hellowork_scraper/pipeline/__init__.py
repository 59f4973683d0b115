"""
Job detail extraction pipeline.

Turns a fetched or rendered detail page into a flat job record through a
structured-data stage and a DOM-heuristic stage.
"""

from .extractor import ExtractionCascade, ExtractionResult

__all__ = ['ExtractionCascade', 'ExtractionResult']
