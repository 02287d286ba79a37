"""Card generation for ticket labels.

A card is a single PDF page split into an upper title block and a lower
half holding the QR code (left) and the subtitle (bottom right):

    +--------------------------------+
    |      wrapped title line 1      |
    |      wrapped title line 2      |
    |- - - - - - - - - - - - - - - - |
    | +------+                       |
    | |  QR  |                       |
    | +------+              subtitle |
    +--------------------------------+

Layout is computed first (layout_card) so line assignment and QR
placement can be checked without decoding the PDF.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import qrcode
from PIL import Image
from qrcode.exceptions import DataOverflowError
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import getAscentDescent, stringWidth
from reportlab.pdfgen import canvas

from ticket_printer.config import LayoutConfig
from ticket_printer.exceptions import RenderError
from ticket_printer.models import Ticket

logger = logging.getLogger(__name__)

FONT_NAME = "Helvetica"

# Anything outside this set is replaced when building the file name
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class TextLine:
    """A line of text positioned on the page (points, origin bottom-left)."""

    text: str
    x: float
    baseline: float


@dataclass(frozen=True)
class QrPlacement:
    """QR modules and the square they are drawn into."""

    matrix: tuple[tuple[bool, ...], ...]
    x: float
    y: float
    size: float


@dataclass(frozen=True)
class CardLayout:
    """Everything needed to draw one card, in points."""

    width: float
    height: float
    title_font_size: float
    title_lines: tuple[TextLine, ...]
    subtitle_font_size: float
    subtitle: TextLine
    qr_width: float
    qr_height: float
    qr: QrPlacement | None


def wrap_title(
    title: str,
    max_width: float,
    max_lines: int,
    measure: Callable[[str], float],
) -> list[str]:
    """Greedy word wrap under a measured width limit.

    Words are added while the line stays strictly narrower than
    max_width. A word that does not fit on an empty line is cut
    character by character. Words left over once max_lines lines are
    full are dropped.

    Args:
        title: Text to wrap.
        max_width: Width every line must stay under.
        max_lines: Maximum number of lines.
        measure: Returns the rendered width of a string.

    Returns:
        list[str]: At most max_lines lines.
    """
    lines: list[str] = []
    current = ""

    for word in title.split():
        while len(lines) < max_lines:
            candidate = f"{current} {word}" if current else word
            if measure(candidate) < max_width:
                current = candidate
                break
            if not current:
                for char in word:
                    if measure(current + char) < max_width:
                        current += char
                    else:
                        break
                break
            lines.append(current)
            current = ""
        if len(lines) >= max_lines:
            break

    if len(lines) < max_lines and current:
        lines.append(current)
    return lines


def make_qr_matrix(data: str, version: int) -> tuple[tuple[bool, ...], ...] | None:
    """Encode data at a fixed QR version with low error correction.

    Args:
        data: Payload, usually the ticket URL.
        version: QR symbol version (1-40).

    Returns:
        tuple | None: Module matrix without quiet zone, or None if the
        payload does not fit the version.
    """
    qr = qrcode.QRCode(
        version=version,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        border=0,
    )
    qr.add_data(data)
    try:
        qr.make(fit=False)
    except DataOverflowError as e:
        logger.warning(f"QR code skipped, {len(data)} characters do not fit version {version}: {e}")
        return None
    return tuple(tuple(row) for row in qr.get_matrix())


def layout_card(ticket: Ticket, layout: LayoutConfig) -> CardLayout:
    """Compute the placement of every element on the card.

    Args:
        ticket: Ticket to lay out.
        layout: Card dimensions in millimetres.

    Returns:
        CardLayout: Positions in points.
    """
    width = layout.width * mm
    height = layout.height * mm
    margin = layout.margin * mm

    qr_width = width / 2 - margin - layout.qrcode_seperator_margin * mm / 2
    qr_height = height / 2 - margin - layout.title_seperator_margin * mm / 2

    # Title block
    text_width = width - 2 * margin
    text_height = height / 2 - margin - layout.title_seperator_margin * mm / 2
    font_size = text_height / layout.title_lines
    ascent, _ = getAscentDescent(FONT_NAME, font_size)
    wrapped = wrap_title(
        ticket.title,
        text_width,
        layout.title_lines,
        lambda text: stringWidth(text, FONT_NAME, font_size),
    )
    title_lines = tuple(
        TextLine(text=text, x=width / 2, baseline=height - margin - i * font_size - ascent)
        for i, text in enumerate(wrapped)
    )

    # Subtitle sits on the bottom margin, right aligned
    subtitle_size = layout.subtitle_size * mm
    _, descent = getAscentDescent(FONT_NAME, subtitle_size)
    subtitle = TextLine(text=ticket.subtitle, x=width - margin, baseline=margin - descent)

    qr = None
    matrix = make_qr_matrix(ticket.url, layout.qr_version)
    if matrix is not None:
        size = min(qr_width, qr_height)
        offset_y = max(0.0, (qr_height - size) / 2)
        qr = QrPlacement(matrix=matrix, x=margin, y=margin + offset_y, size=size)

    return CardLayout(
        width=width,
        height=height,
        title_font_size=font_size,
        title_lines=title_lines,
        subtitle_font_size=subtitle_size,
        subtitle=subtitle,
        qr_width=qr_width,
        qr_height=qr_height,
        qr=qr,
    )


def _qr_image(matrix: tuple[tuple[bool, ...], ...]) -> Image.Image:
    """One pixel per module, black on white."""
    n = len(matrix)
    img = Image.new("L", (n, n), 255)
    img.putdata([0 if dark else 255 for row in matrix for dark in row])
    return img


def card_filename(ticket: Ticket) -> str:
    return f"{_UNSAFE_FILENAME_CHARS.sub('_', ticket.id)}.pdf"


def render_card(ticket: Ticket, layout: LayoutConfig, out_dir: Path) -> Path:
    """Write the card PDF for a ticket.

    Args:
        ticket: Ticket to render.
        layout: Card dimensions.
        out_dir: Directory receiving '<ticket id>.pdf'.

    Returns:
        Path: Written PDF.

    Raises:
        RenderError: If the document cannot be built or written.
    """
    card = layout_card(ticket, layout)
    pdf_path = Path(out_dir) / card_filename(ticket)

    try:
        c = canvas.Canvas(str(pdf_path), pagesize=(card.width, card.height))
        c.setTitle(ticket.title)

        if card.qr is not None:
            c.drawImage(
                ImageReader(_qr_image(card.qr.matrix)),
                card.qr.x,
                card.qr.y,
                width=card.qr.size,
                height=card.qr.size,
            )

        c.setFont(FONT_NAME, card.title_font_size)
        for line in card.title_lines:
            c.drawCentredString(line.x, line.baseline, line.text)

        c.setFont(FONT_NAME, card.subtitle_font_size)
        c.drawRightString(card.subtitle.x, card.subtitle.baseline, card.subtitle.text)

        c.showPage()
        c.save()
    except Exception as e:
        raise RenderError(f"Could not create card for ticket {ticket.id}: {e}") from e

    logger.debug(f"Card for {ticket.id} written to {pdf_path}")
    return pdf_path
