"""キャプションの位置から図の切り出し領域を推定する。"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from loguru import logger

from .caption_detector import CaptionMatch
from .config import ExtractionConfig
from .line_builder import Line


@dataclass(frozen=True)
class CropRegion:
    """ページ全幅の切り出し領域。"""

    width: float
    top: float
    bottom: float

    @property
    def height(self) -> float:
        return self.bottom - self.top


class CropRegionEstimator:
    """キャプション直上の図領域を周辺テキストの配置から推定する。

    PDFには図とキャプションの対応関係が含まれないため、
    「キャプションは図の直下に置かれる」という慣習を利用し、
    キャプションより上で最も近いテキスト行の下端を図の上端とみなす。
    """

    def __init__(
        self,
        caption_padding: float = 15.0,
        fallback_window: float = 600.0,
        min_window: float = 100.0,
        retry_window: float = 450.0,
    ) -> None:
        """初期化。

        Args:
            caption_padding: 直上のテキスト行の下端に加える余白
            fallback_window: 上にテキストがない場合の切り出し高さ
            min_window: これ未満の高さになった場合は領域を再計算する
            retry_window: 再計算時の切り出し高さ
        """
        self.caption_padding = caption_padding
        self.fallback_window = fallback_window
        self.min_window = min_window
        self.retry_window = retry_window

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "CropRegionEstimator":
        return cls(
            caption_padding=config.caption_padding,
            fallback_window=config.fallback_window,
            min_window=config.min_window,
            retry_window=config.retry_window,
        )

    def estimate(
        self,
        caption: CaptionMatch,
        lines: Iterable[Line],
        page_width: float,
    ) -> Optional[CropRegion]:
        """切り出し領域を計算する。

        Args:
            caption: 対象のキャプション
            lines: 同じページの全行（キャプション行を含んでよい）
            page_width: ページ幅（ビューポート座標）

        Returns:
            切り出し領域。高さが0以下になる場合はNone
        """
        bottom = caption.line.top

        nearest = self.nearest_line_above(lines, bottom)
        if nearest is not None:
            top = nearest.bottom + self.caption_padding
        else:
            top = max(0.0, bottom - self.fallback_window)

        # キャプション直上にテキストが詰まっている場合の誤検出対策
        if bottom - top < self.min_window:
            top = max(0.0, bottom - self.retry_window)

        if bottom - top <= 0:
            logger.debug(f"{caption.label}: 切り出し領域の高さが0以下のため除外 (top={top}, bottom={bottom})")
            return None

        return CropRegion(width=page_width, top=top, bottom=bottom)

    @staticmethod
    def nearest_line_above(lines: Iterable[Line], limit: float) -> Optional[Line]:
        """下端がlimitより上（かつ0より下）にある行のうち最も近いものを返す。"""
        candidates = [line for line in lines if 0 < line.bottom < limit]
        if not candidates:
            return None
        return max(candidates, key=lambda line: line.bottom)
