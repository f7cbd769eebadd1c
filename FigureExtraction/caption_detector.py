"""行の中から図のキャプション（"Figure N" / "Fig. N"）を検出する。"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from loguru import logger

from .line_builder import Line

# "Figure 1", "Fig. 1", "fig 1", "FIGURE.1" などを許容する（図番号は1以上）
CAPTION_PATTERN = re.compile(r"^(Figure|Fig)[.\s]+(0*[1-9]\d*)", re.IGNORECASE)


@dataclass(frozen=True)
class CaptionMatch:
    """キャプションとして認識された行。"""

    line: Line
    figure_number: int
    label: str


class CaptionDetector:
    """キャプション行を検出し、ラベルを "Figure N" 形式に正規化する。"""

    def __init__(self, pattern: re.Pattern = CAPTION_PATTERN) -> None:
        self.pattern = pattern

    def match(self, line: Line) -> Optional[CaptionMatch]:
        """1行がキャプションであればCaptionMatchを返す。"""
        m = self.pattern.match(line.text)
        if m is None:
            return None
        digits = m.group(2)
        return CaptionMatch(line=line, figure_number=int(digits), label=f"Figure {digits}")

    def detect(self, lines: Iterable[Line], page_number: Optional[int] = None) -> List[CaptionMatch]:
        """キャプション行をすべて抽出する。

        Args:
            lines: 1ページ分の行
            page_number: ログ出力用のページ番号

        Returns:
            検出されたキャプションのリスト（行の順序を保持）
        """
        captions = []
        for line in lines:
            caption = self.match(line)
            if caption is None:
                continue
            logger.debug(f"キャプション候補を検出 (page={page_number}): {line.text!r}")
            captions.append(caption)
        return captions
