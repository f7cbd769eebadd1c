"""PDFページのレンダリングと位置付きテキスト断片の抽出を行うユーティリティ。"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import fitz  # PyMuPDF


# 以下のProtocolクラスは型チェック専用の構造的部分型を定義する。
# 実行時はPyMuPDF (fitz) の実際のオブジェクト、
# テスト時はダミーオブジェクト (DummyDoc/DummyPage/DummyPixmap) が実装を提供する。


class _PixmapProtocol(Protocol):
    """PdfRendererが必要とするPyMuPDF Pixmap APIのサブセット。"""

    def tobytes(self, image_format: str) -> bytes:
        """指定された形式でバイナリ画像データを返す。"""
        ...


class _PageProtocol(Protocol):
    """PdfRendererが必要とするPyMuPDF Page APIのサブセット。"""

    rotation_matrix: object

    def get_pixmap(self, matrix: object, alpha: bool) -> _PixmapProtocol:
        ...

    def get_text(self, option: str) -> dict:
        ...


class _DocumentProtocol(Protocol):
    """PdfRendererが必要とするPyMuPDF Document APIのサブセット。"""

    page_count: int

    def load_page(self, page_number: int) -> _PageProtocol:
        ...

    def close(self) -> None:
        ...


@dataclass(frozen=True)
class BBox:
    """ビューポート座標空間（Yは下向き）におけるバウンディングボックス。"""

    x0: float
    y0: float
    x1: float
    y1: float


@dataclass(frozen=True)
class GlyphRun:
    """連続した文字列とその位置。

    bboxのy0は上端、y1はベースライン（下端）を表す。
    """

    text: str
    bbox: BBox

    @property
    def top(self) -> float:
        return self.bbox.y0

    @property
    def bottom(self) -> float:
        return self.bbox.y1

    @property
    def left(self) -> float:
        return self.bbox.x0

    @property
    def right(self) -> float:
        return self.bbox.x1


class PdfRenderer:
    """PDFページを画像にレンダリングし、テキスト断片を列挙する。"""

    def __init__(
        self,
        pdf_path: Path | str,
        *,
        doc_factory: Optional[Callable[[Path], _DocumentProtocol]] = None,
    ) -> None:
        self._path = Path(pdf_path)
        if not self._path.exists():
            raise FileNotFoundError(self._path)

        self._doc_factory = doc_factory or self._default_doc_factory
        self._doc: Optional[_DocumentProtocol] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def page_count(self) -> int:
        return self._ensure_document().page_count

    def _ensure_document(self) -> _DocumentProtocol:
        if self._doc is None:
            self._doc = self._doc_factory(self._path)
        return self._doc

    @staticmethod
    def _default_doc_factory(path: Path) -> _DocumentProtocol:
        return fitz.open(path)  # type: ignore[no-any-return]

    def _get_page(self, page_number: int) -> _PageProtocol:
        doc = self._ensure_document()
        if page_number < 0 or page_number >= doc.page_count:
            raise IndexError(f"ページ番号 {page_number} が範囲外です (0-{doc.page_count - 1})。")
        return doc.load_page(page_number)

    def render_page(self, page_number: int, *, zoom: float = 2.0) -> bytes:
        """指定されたページのPNGレンダリング結果を生バイト列として返す。"""

        page = self._get_page(page_number)
        pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        return pixmap.tobytes("png")

    def extract_glyph_runs(self, page_number: int, *, zoom: float = 2.0) -> List[GlyphRun]:
        """指定されたページのテキスト断片をビューポート座標で抽出する。

        PyMuPDFのspan単位で取り出し、上端はspanの上端、下端はベースラインとする。
        空文字列の断片もそのまま返す（除外は行の再構成側で行う）。
        """

        page = self._get_page(page_number)
        # 回転付きページでもレンダリング画像と同じ座標系に揃える
        matrix = page.rotation_matrix * fitz.Matrix(zoom, zoom)
        runs = []
        for block in page.get_text("dict").get("blocks", []):
            # type 0 がテキストブロック、1 は画像ブロック
            if block.get("type", 0) != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    runs.append(self._span_to_run(span, matrix))
        return runs

    @staticmethod
    def _span_to_run(span: dict, matrix: fitz.Matrix) -> GlyphRun:
        rect = fitz.Rect(span["bbox"]) * matrix
        rect.normalize()
        origin = span.get("origin")
        if origin:
            # 回転後に縦書きになる断片ではベースラインが矩形の外に出るため範囲内に収める
            baseline = min(max((fitz.Point(origin) * matrix).y, rect.y0), rect.y1)
        else:
            baseline = rect.y1
        bbox = BBox(
            x0=float(rect.x0),
            y0=float(rect.y0),
            x1=float(rect.x1),
            y1=float(baseline),
        )
        return GlyphRun(text=span.get("text") or "", bbox=bbox)

    def close(self) -> None:
        doc = self._doc
        if doc is not None:
            doc.close()
            self._doc = None

    def __enter__(self) -> "PdfRenderer":
        self._ensure_document()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
