"""
Downloadable PDF surface for a ReportView (ReportLab, A4, Helvetica).

Layout, top to bottom:
  header band → info grid → map section (comparison table, coordinate
  summary, schematic two-point map with radius rings) → photo grid →
  fixed footer with generation time and reference.

No tiles are fetched for the PDF: the map is drawn as a local-metric
schematic so the export works offline and is reproducible.
"""

from __future__ import annotations

import io
import logging
import math
from xml.sax.saxutils import escape

from PIL import Image as PILImage, UnidentifiedImageError
from reportlab.graphics.shapes import Circle, Drawing, Line, Rect, String
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .exceptions import ImageDecodeError
from .imaging import decode_data_uri
from .report import NO_IMAGE, MapOverlay, ReportView, Tone

logger = logging.getLogger(__name__)

NAVY = colors.HexColor("#1e3a8a")
INDIGO = colors.HexColor("#3730a3")
BORDER = colors.HexColor("#e2e8f0")
MUTED = colors.HexColor("#64748b")
TEXT = colors.HexColor("#334155")
PANEL = colors.HexColor("#f8fafc")

_TONE_COLORS = {
    Tone.PASS: colors.HexColor("#16a34a"),
    Tone.FAIL: colors.HexColor("#dc2626"),
    Tone.PENDING: colors.HexColor("#d97706"),
}

PAGE_W, PAGE_H = A4
MARGIN = 12 * mm
CONTENT_W = PAGE_W - 2 * MARGIN

# Metres per degree, good enough for a few hundred metres around a point
_M_PER_DEG_LAT = 110_540.0
_M_PER_DEG_LNG = 111_320.0


# ─── Styles ─────────────────────────────────────────────────────────

_BASE = ParagraphStyle("base", fontName="Helvetica", fontSize=8, leading=10, textColor=TEXT)
_LABEL = ParagraphStyle("label", parent=_BASE, fontName="Helvetica-Bold", fontSize=7,
                        textColor=colors.white)
_TITLE = ParagraphStyle("title", parent=_BASE, fontName="Helvetica-Bold", fontSize=13,
                        leading=16, textColor=colors.white)
_HEADER_ID = ParagraphStyle("hid", parent=_BASE, fontName="Courier", fontSize=7,
                            textColor=colors.HexColor("#93c5fd"), alignment=2)
_BAND = ParagraphStyle("band", parent=_BASE, fontName="Helvetica-Bold", fontSize=9,
                       textColor=colors.white)
_SMALL = ParagraphStyle("small", parent=_BASE, fontSize=6, leading=8)
_SMALL_BOLD = ParagraphStyle("smallb", parent=_SMALL, fontName="Helvetica-Bold",
                             textColor=MUTED)


def render_pdf(view: ReportView, compress: bool = True) -> bytes:
    """Render the report to PDF bytes. compress=False keeps page streams readable."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN + 8 * mm,
        title=view.filename.rsplit(".", 1)[0],
        pageCompression=1 if compress else 0,
    )

    story = [
        _header(view),
        _info_grid(view),
        _band(f"Address shown on the map (Radius: {view.map.radius_m} m)"),
        _comparison_table(view),
        _coordinate_summary(view),
        _map_schematic(view.map),
        _band("Photographic Evidence"),
        _photo_grid(view),
    ]

    def _footer(canvas, _doc):
        canvas.saveState()
        canvas.setStrokeColor(BORDER)
        canvas.line(MARGIN, MARGIN + 4 * mm, PAGE_W - MARGIN, MARGIN + 4 * mm)
        canvas.setFont("Helvetica", 6)
        canvas.setFillColor(colors.HexColor("#94a3b8"))
        canvas.drawString(MARGIN, MARGIN, "Confidential Address Verification Report")
        canvas.drawRightString(
            PAGE_W - MARGIN, MARGIN,
            f"Generated: {view.generated_at} | Ref: {view.reference} | Page {_doc.page}",
        )
        canvas.restoreState()

    doc.build(story, onFirstPage=_footer, onLaterPages=_footer)
    logger.info("Rendered PDF %s (%d bytes)", view.filename, buf.tell())
    return buf.getvalue()


# ─── Sections ───────────────────────────────────────────────────────


def _header(view: ReportView) -> Table:
    table = Table(
        [[Paragraph(view.title, _TITLE), Paragraph(f"ID: {escape(view.record_id)}", _HEADER_ID)]],
        colWidths=[CONTENT_W * 0.75, CONTENT_W * 0.25],
    )
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), NAVY),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
    ]))
    return table


def _info_grid(view: ReportView) -> Table:
    rows = []
    n = max(len(view.left_rows), len(view.right_rows))
    for i in range(n):
        row = []
        for side in (view.left_rows, view.right_rows):
            if i < len(side):
                item = side[i]
                style = _BASE
                if item.tone in _TONE_COLORS:
                    style = ParagraphStyle(
                        f"tone-{item.tone.value}", parent=_BASE,
                        fontName="Helvetica-Bold", textColor=_TONE_COLORS[item.tone],
                    )
                row += [Paragraph(item.label, _LABEL), Paragraph(escape(item.value), style)]
            else:
                row += ["", ""]
        rows.append(row)

    label_w = CONTENT_W * 0.5 * 0.38
    value_w = CONTENT_W * 0.5 - label_w
    table = Table(rows, colWidths=[label_w, value_w, label_w, value_w])
    style = [
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("BACKGROUND", (0, 0), (0, len(view.left_rows) - 1), NAVY),
        ("BACKGROUND", (2, 0), (2, len(view.right_rows) - 1), NAVY),
    ]
    table.setStyle(TableStyle(style))
    return table


def _band(text: str) -> Table:
    table = Table([[Paragraph(text, _BAND)]], colWidths=[CONTENT_W])
    table.setStyle(TableStyle([("BACKGROUND", (0, 0), (-1, -1), INDIGO)]))
    return table


def _comparison_table(view: ReportView) -> Table:
    head = ["Description", "Source", "Distance", "Resolution Logic", "Legend"]
    rows = [[Paragraph(h, _SMALL_BOLD) for h in head]]
    for row in view.comparison:
        rows.append([
            Paragraph(escape(row.description), _BASE),
            Paragraph(row.source, _BASE),
            Paragraph(row.distance, _BASE),
            Paragraph(row.resolution, _BASE),
            _dot(row.legend_color),
        ])
    table = Table(rows, colWidths=[CONTENT_W * f for f in (0.34, 0.14, 0.14, 0.26, 0.12)])
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("BACKGROUND", (0, 0), (-1, 0), PANEL),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (-1, 0), (-1, -1), "CENTER"),
    ]))
    return table


def _coordinate_summary(view: ReportView) -> Table:
    cells = [
        ("Claimed Location (Geocoded)", view.claimed_text),
        ("GPS Captured Point", view.captured_text),
        ("Distance", view.distance_text),
    ]
    table = Table(
        [[[Paragraph(label, _SMALL_BOLD), Paragraph(escape(value), _BASE)] for label, value in cells]],
        colWidths=[CONTENT_W / 3] * 3,
    )
    table.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 0.5, BORDER),
        ("BACKGROUND", (0, 0), (-1, -1), PANEL),
    ]))
    return table


def _map_schematic(overlay: MapOverlay, height: float = 60 * mm) -> Drawing:
    """Both points on a local metric plane around the overlay centre, with radius rings."""
    width = CONTENT_W
    d = Drawing(width, height)
    d.add(Rect(0, 0, width, height, fillColor=colors.HexColor("#f1f5f9"), strokeColor=BORDER))

    c_lat, c_lng = overlay.center
    cos_lat = math.cos(math.radians(c_lat))

    def to_metres(lat: float, lng: float) -> tuple[float, float]:
        return (lng - c_lng) * _M_PER_DEG_LNG * cos_lat, (lat - c_lat) * _M_PER_DEG_LAT

    points = [(p, *to_metres(p.lat, p.lng)) for p in overlay.points]
    extent = max([overlay.radius_m * 1.5] + [max(abs(x), abs(y)) + overlay.radius_m for _, x, y in points])
    scale = (min(width, height) / 2 - 6) / extent  # points per metre

    def to_canvas(x: float, y: float) -> tuple[float, float]:
        return width / 2 + x * scale, height / 2 + y * scale

    # 100 m grid
    step = 100 * scale
    if step > 4:
        gx = width / 2 % step
        while gx < width:
            d.add(Line(gx, 0, gx, height, strokeColor=BORDER, strokeWidth=0.3))
            gx += step
        gy = height / 2 % step
        while gy < height:
            d.add(Line(0, gy, width, gy, strokeColor=BORDER, strokeWidth=0.3))
            gy += step

    if len(points) == 2:
        (_, x1, y1), (_, x2, y2) = points
        d.add(Line(*to_canvas(x1, y1), *to_canvas(x2, y2),
                   strokeColor=MUTED, strokeWidth=1, strokeDashArray=[4, 4]))

    for point, x, y in points:
        cx, cy = to_canvas(x, y)
        color = colors.HexColor(point.color)
        ring = Circle(cx, cy, overlay.radius_m * scale, strokeColor=color, strokeWidth=1,
                      strokeDashArray=[2, 4], fillColor=color, fillOpacity=0.12)
        d.add(ring)
        d.add(Circle(cx, cy, 3, fillColor=color, strokeColor=colors.white, strokeWidth=0.5))
        d.add(String(cx + 5, cy + 5, point.label, fontName="Helvetica-Bold", fontSize=6,
                     fillColor=TEXT))

    if not points:
        d.add(String(width / 2, height / 2, "No coordinates recorded", fontName="Helvetica",
                     fontSize=8, fillColor=MUTED, textAnchor="middle"))
    d.add(String(width - 6, 6, f"Radius: {overlay.radius_m}m", fontName="Helvetica-Oblique",
                 fontSize=6, fillColor=MUTED, textAnchor="end"))
    return d


def _photo_grid(view: ReportView) -> Table:
    cell_w = CONTENT_W / 2
    cells = []
    for block in view.evidence:
        cells.append([
            Paragraph(block.label.upper(), _SMALL_BOLD),
            Spacer(1, 2),
            _photo(block.image, cell_w - 12, 55 * mm),
            Spacer(1, 2),
            Paragraph(
                f"<b>Time:</b> {escape(block.timestamp)} &nbsp; <b>GPS:</b> {escape(block.location)}",
                _SMALL,
            ),
        ])
    if len(cells) % 2:
        cells.append("")
    rows = [cells[i:i + 2] for i in range(0, len(cells), 2)]
    table = Table(rows, colWidths=[cell_w, cell_w])
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    return table


def _photo(data_uri: str | None, max_w: float, max_h: float):
    if not data_uri:
        return Paragraph(NO_IMAGE, _SMALL)
    try:
        _, data = decode_data_uri(data_uri)
        with PILImage.open(io.BytesIO(data)) as img:
            w, h = img.size
    except (ImageDecodeError, UnidentifiedImageError, OSError) as e:
        logger.warning("Skipping undecodable evidence image: %s", e)
        return Paragraph(NO_IMAGE, _SMALL)

    ratio = min(max_w / w, max_h / h)
    return Image(io.BytesIO(data), width=w * ratio, height=h * ratio)


def _dot(hex_color: str) -> Drawing:
    d = Drawing(10, 10)
    d.add(Circle(5, 5, 4, fillColor=colors.HexColor(hex_color), strokeColor=None))
    return d
