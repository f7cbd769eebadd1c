"""図抽出ヒューリスティックの調整用定数をまとめた設定。"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace

# 以下の既定値はレンダリング倍率2.0で経験的に調整されたもの。
BASE_SCALE = 2.0

_LENGTH_FIELDS = (
    "line_tolerance",
    "word_gap",
    "caption_padding",
    "fallback_window",
    "min_window",
    "retry_window",
)


@dataclass(frozen=True)
class ExtractionConfig:
    """抽出処理全体で使用する設定値。

    長さの単位はすべてビューポート座標（指定倍率でレンダリングしたピクセル）。

    Attributes:
        scale: ページのレンダリング倍率
        line_tolerance: 同一行とみなすベースライン差の上限
        word_gap: これを超える水平方向の隙間に空白を挿入する
        caption_padding: 直上のテキスト行の下端から切り出し上端までの余白
        fallback_window: 上にテキストがない場合の切り出し高さ
        min_window: これ未満の高さの切り出し領域は再計算する
        retry_window: 再計算時の切り出し高さ
        image_format: 出力画像の形式
        background: 切り出し画像の背景色
    """

    scale: float = BASE_SCALE
    line_tolerance: float = 8.0
    word_gap: float = 5.0
    caption_padding: float = 15.0
    fallback_window: float = 600.0
    min_window: float = 100.0
    retry_window: float = 450.0
    image_format: str = "PNG"
    background: str = "white"

    def __post_init__(self) -> None:
        if self.scale <= 0:
            raise ValueError(f"scaleは正の値である必要があります: {self.scale}")
        for name in _LENGTH_FIELDS:
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name}は0以上である必要があります: {value}")

    @classmethod
    def for_scale(cls, scale: float) -> "ExtractionConfig":
        """既定値を倍率2.0基準から線形に換算した設定を返す。"""
        if scale <= 0:
            raise ValueError(f"scaleは正の値である必要があります: {scale}")
        base = cls()
        ratio = scale / BASE_SCALE
        scaled = {name: getattr(base, name) * ratio for name in _LENGTH_FIELDS}
        return replace(base, scale=scale, **scaled)

    def to_dict(self) -> dict:
        """辞書形式に変換。"""
        return {f.name: getattr(self, f.name) for f in fields(self)}
