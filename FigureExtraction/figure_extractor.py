"""キャプションごとにページ画像から図を切り出す。"""
from __future__ import annotations

import base64
from dataclasses import dataclass
from functools import partial
from io import BytesIO
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from loguru import logger
from PIL import Image

from .caption_detector import CaptionDetector
from .config import ExtractionConfig
from .crop_region import CropRegion, CropRegionEstimator
from .line_builder import LineBuilder
from .pdf_renderer import GlyphRun, PdfRenderer

_MIME_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}


@dataclass(frozen=True)
class ExtractedFigure:
    """切り出された図。"""

    id: str
    label: str
    page: int
    image: bytes
    image_format: str = "PNG"

    @property
    def data_url(self) -> str:
        """画像をdata URLとして返す（サムネイル表示用）。"""
        mime = _MIME_TYPES.get(self.image_format.upper(), "application/octet-stream")
        encoded = base64.b64encode(self.image).decode("ascii")
        return f"data:{mime};base64,{encoded}"

    def to_dict(self) -> Dict:
        """辞書形式に変換。"""
        return {
            "id": self.id,
            "label": self.label,
            "page": self.page,
            "src": self.data_url,
        }


class FigureExtractor:
    """ページ単位でキャプションを検出し、その直上の領域を画像として切り出す。"""

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        *,
        line_builder: Optional[LineBuilder] = None,
        caption_detector: Optional[CaptionDetector] = None,
        region_estimator: Optional[CropRegionEstimator] = None,
    ) -> None:
        """初期化。

        Args:
            config: 抽出設定。省略時は倍率2.0の既定値
            line_builder: 行の再構成処理（差し替え用）
            caption_detector: キャプション検出処理（差し替え用）
            region_estimator: 切り出し領域の推定処理（差し替え用）
        """
        self.config = config or ExtractionConfig()
        self.line_builder = line_builder or LineBuilder.from_config(self.config)
        self.caption_detector = caption_detector or CaptionDetector()
        self.region_estimator = region_estimator or CropRegionEstimator.from_config(self.config)

    def crop(self, image: bytes | Image.Image, region: CropRegion) -> Image.Image:
        """領域を白背景の新しい画像に切り出す。

        元画像の範囲外になる部分は背景色のまま残る。
        """
        pil_image = self._to_image(image)

        # 小数の座標は切り捨てる（高さは領域の高さを切り捨てた値）
        top = int(region.top)
        height = max(1, int(region.height))
        bottom = top + height
        width = max(1, int(region.width))

        canvas = Image.new("RGB", (width, height), color=self.config.background)

        src_top = max(0, top)
        src_bottom = min(pil_image.height, bottom)
        src_right = min(width, pil_image.width)
        if src_bottom > src_top and src_right > 0:
            strip = pil_image.crop((0, src_top, src_right, src_bottom))
            canvas.paste(strip.convert("RGB"), (0, src_top - top))

        return canvas

    def extract_page(
        self,
        page_number: int,
        runs: Iterable[GlyphRun],
        render: Callable[[], bytes | Image.Image],
    ) -> List[ExtractedFigure]:
        """1ページ分の図を抽出する。

        Args:
            page_number: ページ番号（1始まり）
            runs: ページのテキスト断片（ビューポート座標）
            render: ページ画像を返す関数。キャプションがある場合のみ呼ばれる

        Returns:
            抽出された図のリスト（キャプションの出現順）
        """
        lines = self.line_builder.build(runs)
        captions = self.caption_detector.detect(lines, page_number)
        if not captions:
            return []

        page_image = self._to_image(render())

        figures = []
        for caption in captions:
            region = self.region_estimator.estimate(caption, lines, page_image.width)
            if region is None:
                continue

            cropped = self.crop(page_image, region)
            figures.append(
                ExtractedFigure(
                    id=f"{page_number}-{caption.label}",
                    label=caption.label,
                    page=page_number,
                    image=self._encode(cropped),
                    image_format=self.config.image_format,
                )
            )
            logger.info(f"ページ {page_number} から {caption.label} を抽出しました")

        return figures

    def iter_document(self, renderer: PdfRenderer) -> Iterator[ExtractedFigure]:
        """文書の先頭ページから順に図を返す。

        ページ単位で失敗した場合はログに記録してそのページを飛ばす。
        呼び出し側はページの区切りで反復を打ち切ってよい。
        """
        zoom = self.config.scale
        for index in range(renderer.page_count):
            page_number = index + 1
            try:
                runs = renderer.extract_glyph_runs(index, zoom=zoom)
                figures = self.extract_page(
                    page_number,
                    runs,
                    partial(renderer.render_page, index, zoom=zoom),
                )
            except Exception as e:
                logger.warning(f"ページ {page_number} の処理に失敗したためスキップします: {e}")
                continue
            yield from figures

    def extract_document(self, renderer: PdfRenderer) -> List[ExtractedFigure]:
        """文書全体から図を抽出する。"""
        figures = list(self.iter_document(renderer))
        logger.info(f"{renderer.path} から {len(figures)} 個の図を抽出しました")
        return figures

    def _encode(self, image: Image.Image) -> bytes:
        buffer = BytesIO()
        image.save(buffer, format=self.config.image_format)
        return buffer.getvalue()

    @staticmethod
    def _to_image(image: bytes | Image.Image) -> Image.Image:
        if isinstance(image, bytes):
            return Image.open(BytesIO(image))
        return image


def extract_figures(
    pdf_path: Path | str,
    config: Optional[ExtractionConfig] = None,
) -> List[ExtractedFigure]:
    """PDFファイルから図を抽出する。"""
    extractor = FigureExtractor(config)
    with PdfRenderer(pdf_path) as renderer:
        return extractor.extract_document(renderer)
