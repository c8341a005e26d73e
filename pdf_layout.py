"""
Page layout primitives for report and receipt PDFs

Documents are built as a list of pages holding draw operations (text runs,
filled rectangles, lines and one raster image) and serialized with the
ReportLab canvas once finished. Keeping the operations around makes page
count and cell text inspectable without parsing the PDF.
"""

import enum
import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from errors import AssetDecodeFailure

logger = logging.getLogger(__name__)

FONT_REGULAR = 'Helvetica'
FONT_BOLD = 'Helvetica-Bold'

WHITE = colors.Color(1, 1, 1)
DARK = colors.Color(0.08, 0.08, 0.08)
MUTED = colors.Color(0.35, 0.35, 0.35)
LIGHT_GREY = colors.Color(0.8, 0.8, 0.8)


class Align(enum.Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"


@dataclass(frozen=True)
class ColumnSpec:
    """Column of a table report: row key, header label, width weight, alignment."""
    key: str
    label: str
    weight: int = 1
    align: Align = Align.LEFT


def text_width(text: str, size: float, font: str = FONT_REGULAR) -> float:
    """Rendered width of text in points, from the font's glyph advance widths."""
    return pdfmetrics.stringWidth(text, font, size)


def wrap_text(text: str, max_width: float, size: float, font: str = FONT_REGULAR) -> List[str]:
    """
    Greedy word wrap

    Words are appended to the current line while the measured width stays
    within max_width; otherwise the line is flushed and a new one started.
    A single word wider than max_width gets a line of its own.

    Returns:
        List of lines (empty for blank text)
    """
    lines: List[str] = []
    current = ''
    for word in (text or '').split():
        candidate = f'{current} {word}' if current else word
        if text_width(candidate, size, font) <= max_width:
            current = candidate
        elif current:
            lines.append(current)
            current = word
        else:
            lines.append(candidate)
            current = ''
    if current:
        lines.append(current)
    return lines


# ----------- OPERACIONES DE DIBUJO -----------

@dataclass(frozen=True)
class TextOp:
    x: float
    y: float
    text: str
    font: str
    size: float
    color: colors.Color

    def draw(self, pdf: canvas.Canvas):
        pdf.setFillColor(self.color)
        pdf.setFont(self.font, self.size)
        pdf.drawString(self.x, self.y, self.text)


@dataclass(frozen=True)
class RectOp:
    x: float
    y: float
    width: float
    height: float
    color: colors.Color

    def draw(self, pdf: canvas.Canvas):
        pdf.setFillColor(self.color)
        pdf.rect(self.x, self.y, self.width, self.height, stroke=0, fill=1)


@dataclass(frozen=True)
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    thickness: float
    color: colors.Color

    def draw(self, pdf: canvas.Canvas):
        pdf.setStrokeColor(self.color)
        pdf.setLineWidth(self.thickness)
        pdf.line(self.x1, self.y1, self.x2, self.y2)


@dataclass(frozen=True)
class ImageOp:
    image: ImageReader
    x: float
    y: float
    width: float
    height: float

    def draw(self, pdf: canvas.Canvas):
        pdf.drawImage(self.image, self.x, self.y, self.width, self.height, mask='auto')


@dataclass
class Page:
    document: 'RenderedDocument'
    number: int
    ops: list = field(default_factory=list)

    def _append(self, op):
        if self.document.finalized:
            raise RuntimeError('El documento ya fue finalizado')
        self.ops.append(op)
        return op

    def draw_text(self, x, y, text, size, font=FONT_REGULAR, color=DARK):
        return self._append(TextOp(x, y, text, font, size, color))

    def draw_rect(self, x, y, width, height, color):
        return self._append(RectOp(x, y, width, height, color))

    def draw_line(self, start, end, thickness, color):
        return self._append(LineOp(start[0], start[1], end[0], end[1], thickness, color))

    def draw_image(self, image, x, y, width, height):
        return self._append(ImageOp(image, x, y, width, height))

    def texts(self) -> List[str]:
        return [op.text for op in self.ops if isinstance(op, TextOp)]


class RenderedDocument:
    """Ordered pages of draw operations; append-only until finalized."""

    def __init__(self, page_size: Tuple[float, float] = A4, title: str = ''):
        self.page_size = page_size
        self.title = title
        self.pages: List[Page] = []
        self.finalized = False

    @property
    def width(self) -> float:
        return self.page_size[0]

    @property
    def height(self) -> float:
        return self.page_size[1]

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def add_page(self) -> Page:
        if self.finalized:
            raise RuntimeError('El documento ya fue finalizado')
        page = Page(self, len(self.pages) + 1)
        self.pages.append(page)
        return page

    def finalize(self) -> 'RenderedDocument':
        self.finalized = True
        return self

    def texts(self) -> List[str]:
        return [text for page in self.pages for text in page.texts()]

    def to_pdf_bytes(self) -> bytes:
        """Serialize to PDF; invariant mode keeps output stable across runs."""
        self.finalize()
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=self.page_size, invariant=1)
        if self.title:
            pdf.setTitle(self.title)
        for page in self.pages:
            for op in page.ops:
                op.draw(pdf)
            pdf.showPage()
        pdf.save()
        return buffer.getvalue()


class LayoutCursor:
    """
    Vertical position while laying out a document

    Owned by a single render call. Callers check needs_break() before
    drawing a row so the cursor never passes the bottom limit.
    """

    def __init__(self, document: RenderedDocument, top: float, bottom_limit: float):
        self.document = document
        self.top = top
        self.bottom_limit = bottom_limit
        self.page = document.add_page()
        self.y = top

    def move_down(self, amount: float):
        self.y -= amount

    def needs_break(self) -> bool:
        return self.y < self.bottom_limit

    def new_page(self, top: Optional[float] = None) -> Page:
        self.page = self.document.add_page()
        self.y = self.top if top is None else top
        return self.page


# ----------- LOGO -----------

@dataclass(frozen=True)
class Logo:
    image: ImageReader
    width: float
    height: float

    def scaled_to_height(self, max_height: float) -> Tuple[float, float]:
        """Size that fits max_height, keeping aspect ratio and never upscaling."""
        scale = min(1, max_height / self.height)
        return self.width * scale, self.height * scale


def decode_logo(data: bytes) -> Logo:
    """
    Decode raster logo bytes

    Raises:
        AssetDecodeFailure: the bytes are not a readable image
    """
    try:
        image = ImageReader(io.BytesIO(data))
        width, height = image.getSize()
    except Exception as exc:
        raise AssetDecodeFailure(f'Logo no decodificable: {exc}') from exc
    if not width or not height:
        raise AssetDecodeFailure('Logo sin dimensiones')
    return Logo(image, width, height)


def try_decode_logo(data: Optional[bytes]) -> Optional[Logo]:
    """Decode the logo if present; a decoding failure is logged and ignored."""
    if not data:
        return None
    try:
        return decode_logo(data)
    except AssetDecodeFailure as exc:
        logger.warning(f"No se pudo embeber el logo, se continúa sin él: {exc}")
        return None
