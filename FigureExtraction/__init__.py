"""Figure extraction module package."""

from .config import ExtractionConfig
from .pdf_renderer import PdfRenderer, BBox, GlyphRun
from .line_builder import LineBuilder, Line
from .caption_detector import CaptionDetector, CaptionMatch
from .crop_region import CropRegionEstimator, CropRegion
from .figure_extractor import FigureExtractor, ExtractedFigure, extract_figures

__all__ = [
    "ExtractionConfig",
    "PdfRenderer",
    "BBox",
    "GlyphRun",
    "LineBuilder",
    "Line",
    "CaptionDetector",
    "CaptionMatch",
    "CropRegionEstimator",
    "CropRegion",
    "FigureExtractor",
    "ExtractedFigure",
    "extract_figures",
]
