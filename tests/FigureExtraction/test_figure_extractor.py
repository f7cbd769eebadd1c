"""FigureExtractor のテスト。"""
import base64
from io import BytesIO
from pathlib import Path
from typing import Dict, List

import fitz
import pytest
from loguru import logger
from PIL import Image, ImageDraw

from FigureExtraction.config import ExtractionConfig
from FigureExtraction.crop_region import CropRegion
from FigureExtraction.figure_extractor import ExtractedFigure, FigureExtractor, extract_figures
from FigureExtraction.pdf_renderer import BBox, GlyphRun

PAGE_SIZE = (1224, 1584)


def make_run(text: str, x0: float, x1: float, top: float, bottom: float) -> GlyphRun:
    return GlyphRun(text=text, bbox=BBox(x0, top, x1, bottom))


def to_png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def page_image() -> Image.Image:
    """200-500の範囲に黒い図を描いたページ画像。"""
    image = Image.new("RGB", PAGE_SIZE, color="white")
    draw = ImageDraw.Draw(image)
    draw.rectangle((100, 200, 900, 500), fill="black")
    return image


@pytest.fixture()
def page_runs() -> List[GlyphRun]:
    return [
        make_run("Intro", 100.0, 160.0, 80.0, 100.0),
        make_run("text", 170.0, 210.0, 80.0, 100.0),
        make_run("Figure", 100.0, 170.0, 600.0, 620.0),
        make_run("1:", 178.0, 195.0, 600.0, 620.0),
        make_run("results", 205.0, 280.0, 600.0, 620.0),
    ]


@pytest.fixture()
def log_messages():
    messages: List[str] = []
    handler_id = logger.add(messages.append, level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)


class DummyRenderer:
    """PdfRendererの代わりにページごとの断片と画像を返す。"""

    def __init__(self, pages: List[Dict]) -> None:
        self.pages = pages
        self.path = Path("dummy.pdf")
        self.rendered: List[int] = []
        self.zooms: List[float] = []

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def extract_glyph_runs(self, page_number: int, *, zoom: float = 2.0) -> List[GlyphRun]:
        self.zooms.append(zoom)
        page = self.pages[page_number]
        if "text_error" in page:
            raise page["text_error"]
        return page["runs"]

    def render_page(self, page_number: int, *, zoom: float = 2.0) -> bytes:
        self.rendered.append(page_number)
        page = self.pages[page_number]
        if "render_error" in page:
            raise page["render_error"]
        return page["image"]


def test_crop_has_region_size_and_white_background(page_image: Image.Image) -> None:
    extractor = FigureExtractor()

    cropped = extractor.crop(page_image, CropRegion(width=PAGE_SIZE[0], top=115.0, bottom=600.0))

    assert cropped.size == (PAGE_SIZE[0], 485)
    # 115 + 85 = 200 が図の上端
    assert cropped.getpixel((500, 85)) == (0, 0, 0)
    assert cropped.getpixel((500, 84)) == (255, 255, 255)
    assert cropped.getpixel((50, 200)) == (255, 255, 255)


@pytest.mark.parametrize(
    ("top", "bottom", "expected_height"),
    [(115.5, 600.5, 485), (115.9, 600.0, 484), (114.2, 599.9, 485)],
)
def test_crop_truncates_fractional_region(
    page_image: Image.Image, top: float, bottom: float, expected_height: int
) -> None:
    """小数の領域は上端・高さとも切り捨てで画素に変換される。"""
    extractor = FigureExtractor()

    cropped = extractor.crop(page_image, CropRegion(width=PAGE_SIZE[0] + 0.7, top=top, bottom=bottom))

    assert cropped.size == (PAGE_SIZE[0], expected_height)
    # 上端は切り捨てられるので 200 - int(top) 行目が図の上端
    assert cropped.getpixel((500, 200 - int(top))) == (0, 0, 0)
    assert cropped.getpixel((500, 199 - int(top))) == (255, 255, 255)


def test_crop_outside_page_is_filled_white(page_image: Image.Image) -> None:
    extractor = FigureExtractor()

    cropped = extractor.crop(page_image, CropRegion(width=PAGE_SIZE[0], top=1500.0, bottom=1700.0))

    assert cropped.size == (PAGE_SIZE[0], 200)
    assert cropped.getpixel((10, 150)) == (255, 255, 255)


def test_crop_accepts_png_bytes(page_image: Image.Image) -> None:
    extractor = FigureExtractor()

    cropped = extractor.crop(to_png(page_image), CropRegion(width=PAGE_SIZE[0], top=300.0, bottom=400.0))

    assert cropped.size == (PAGE_SIZE[0], 100)
    assert cropped.getpixel((500, 50)) == (0, 0, 0)


def test_extract_page_end_to_end(page_image: Image.Image, page_runs: List[GlyphRun]) -> None:
    """本文の下端100、キャプション上端600のページから115-600の図が切り出される。"""
    extractor = FigureExtractor()

    figures = extractor.extract_page(3, page_runs, lambda: page_image)

    assert len(figures) == 1
    figure = figures[0]
    assert figure.id == "3-Figure 1"
    assert figure.label == "Figure 1"
    assert figure.page == 3

    decoded = Image.open(BytesIO(figure.image))
    assert decoded.format == "PNG"
    assert decoded.size == (PAGE_SIZE[0], 485)
    assert decoded.convert("RGB").getpixel((500, 85)) == (0, 0, 0)


def test_extract_page_without_captions_does_not_render() -> None:
    extractor = FigureExtractor()

    def render():
        raise AssertionError("キャプションがないページはレンダリングしない")

    runs = [make_run("Just text", 0.0, 100.0, 80.0, 100.0)]

    assert extractor.extract_page(1, runs, render) == []


def test_extract_page_with_multiple_captions(page_image: Image.Image) -> None:
    runs = [
        make_run("Fig. 1 top figure", 100.0, 300.0, 600.0, 620.0),
        make_run("Body", 100.0, 150.0, 700.0, 720.0),
        make_run("FIGURE 2", 100.0, 200.0, 1200.0, 1220.0),
    ]
    extractor = FigureExtractor()

    figures = extractor.extract_page(2, runs, lambda: page_image)

    assert [f.label for f in figures] == ["Figure 1", "Figure 2"]
    second = Image.open(BytesIO(figures[1].image))
    # 720 + 15 = 735 から 1200 まで
    assert second.size == (PAGE_SIZE[0], 465)


def test_extract_page_drops_degenerate_region(page_image: Image.Image, log_messages: List[str]) -> None:
    runs = [make_run("Figure 7", 0.0, 100.0, 0.0, 20.0)]
    extractor = FigureExtractor()

    assert extractor.extract_page(1, runs, lambda: page_image) == []
    assert any("Figure 7" in message for message in log_messages)


def test_iter_document_skips_failed_pages(page_image: Image.Image, page_runs: List[GlyphRun], log_messages: List[str]) -> None:
    png = to_png(page_image)
    renderer = DummyRenderer(
        [
            {"runs": page_runs, "image": png},
            {"text_error": RuntimeError("broken text layer")},
            {"runs": page_runs, "render_error": RuntimeError("no canvas")},
            {"runs": page_runs, "image": b"not an image"},
            {"runs": [make_run("Fig 4", 0.0, 50.0, 600.0, 620.0)], "image": png},
        ]
    )
    extractor = FigureExtractor()

    figures = extractor.extract_document(renderer)

    assert [(f.page, f.label) for f in figures] == [(1, "Figure 1"), (5, "Figure 4")]
    warnings = [m for m in log_messages if m.startswith("WARNING")]
    assert len(warnings) == 3
    assert "ページ 2" in warnings[0]
    assert "ページ 3" in warnings[1]
    assert "ページ 4" in warnings[2]


def test_iter_document_can_stop_between_pages(page_image: Image.Image, page_runs: List[GlyphRun]) -> None:
    png = to_png(page_image)
    renderer = DummyRenderer([{"runs": page_runs, "image": png} for _ in range(3)])
    extractor = FigureExtractor()

    first = next(extractor.iter_document(renderer))

    assert first.page == 1
    assert renderer.rendered == [0]


def test_iter_document_uses_configured_scale() -> None:
    renderer = DummyRenderer([{"runs": []}])
    extractor = FigureExtractor(ExtractionConfig.for_scale(1.5))

    assert extractor.extract_document(renderer) == []
    assert renderer.zooms == [1.5]


def test_extracted_figure_to_dict() -> None:
    figure = ExtractedFigure(id="1-Figure 1", label="Figure 1", page=1, image=b"\x89PNG")

    data = figure.to_dict()

    assert data["id"] == "1-Figure 1"
    assert data["label"] == "Figure 1"
    assert data["page"] == 1
    assert data["src"] == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode("ascii")


def test_extract_figures_from_generated_pdf(tmp_path: Path) -> None:
    """PyMuPDFで生成したPDFから図を抽出できることを確認。"""
    pdf_path = tmp_path / "paper.pdf"
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    page.insert_text((72, 50), "Intro text")
    page.draw_rect(fitz.Rect(72, 100, 300, 250), color=(0, 0, 0), fill=(0, 0, 0))
    page.insert_text((72, 300), "Figure 1: results")
    doc.new_page(width=612, height=792).insert_text((72, 50), "No figures here")
    doc.save(pdf_path)
    doc.close()

    figures = extract_figures(pdf_path)

    assert [(f.page, f.label) for f in figures] == [(1, "Figure 1")]
    image = Image.open(BytesIO(figures[0].image)).convert("RGB")
    assert image.width == 1224
    assert 400 < image.height < 485
    # ビューポート (300, 315) は塗りつぶした矩形の内側
    assert image.getpixel((300, 200)) == (0, 0, 0)
