"""位置付きテキスト断片を行単位に再構成する。"""
from __future__ import annotations

from dataclasses import dataclass
from functools import cmp_to_key
from typing import Iterable, List

from .config import ExtractionConfig
from .pdf_renderer import GlyphRun


@dataclass(frozen=True)
class Line:
    """同一ベースライン上の断片をまとめた1行。"""

    text: str
    top: float
    bottom: float
    left: float

    @property
    def height(self) -> float:
        return self.bottom - self.top


class LineBuilder:
    """テキスト断片をベースライン位置でグルーピングし、行を組み立てる。"""

    def __init__(self, line_tolerance: float = 8.0, word_gap: float = 5.0) -> None:
        """初期化。

        Args:
            line_tolerance: 同一行とみなすベースライン差の上限（未満なら同一行）
            word_gap: これを超える水平方向の隙間があれば空白を挿入する
        """
        self.line_tolerance = line_tolerance
        self.word_gap = word_gap

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "LineBuilder":
        return cls(line_tolerance=config.line_tolerance, word_gap=config.word_gap)

    def build(self, runs: Iterable[GlyphRun]) -> List[Line]:
        """テキスト断片から行のリストを上から順に作る。

        Args:
            runs: 1ページ分のテキスト断片

        Returns:
            再構成された行のリスト
        """
        items = [run for run in runs if run.text.strip()]
        if not items:
            return []

        items.sort(key=cmp_to_key(self._compare))

        lines = []
        current: List[GlyphRun] = []
        for run in items:
            if current and not self._same_line(current[-1], run):
                lines.append(self.merge(current))
                current = []
            current.append(run)
        if current:
            lines.append(self.merge(current))

        return lines

    def merge(self, runs: List[GlyphRun]) -> Line:
        """1行分の断片を左から順に連結する。

        PDFによっては単語が1文字単位や音節単位で分割されているため、
        隙間が小さい場合は空白を入れずに連結する。
        """
        ordered = sorted(runs, key=lambda r: r.left)

        parts = [ordered[0].text]
        for prev, curr in zip(ordered, ordered[1:]):
            if curr.left - prev.right > self.word_gap:
                parts.append(" ")
            parts.append(curr.text)

        return Line(
            text="".join(parts),
            top=min(r.top for r in ordered),
            bottom=max(r.bottom for r in ordered),
            left=ordered[0].left,
        )

    def _same_line(self, a: GlyphRun, b: GlyphRun) -> bool:
        return abs(a.bottom - b.bottom) < self.line_tolerance

    def _compare(self, a: GlyphRun, b: GlyphRun) -> float:
        # ベースラインが近ければ左から、そうでなければ上から並べる
        if self._same_line(a, b):
            return a.left - b.left
        return a.bottom - b.bottom
