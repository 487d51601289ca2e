"""
PDF export for generated exams: the question paper and its mark scheme.

Model output is trusted only loosely: every field is read defensively and
missing pieces are simply skipped. LaTeX ($...$ / $$...$$) is rendered to
images through matplotlib mathtext.
"""

import math
import os
import re
from functools import lru_cache
from io import BytesIO
from typing import Any, Dict, List, Optional

# ── PDF ──────────────────────────────────────────────────────────────
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle,
    HRFlowable, Image, KeepTogether
)
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.colors import HexColor

# ── Math rendering ───────────────────────────────────────────────────
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

DOCUMENTS = ("exam", "markScheme")

# ═══════════════════════════════════════════════════════════════════════
# MATH IMAGE RENDERER
# Renders a line of mixed text and $math$ to PNG and returns a ReportLab
# Image flowable.
# ═══════════════════════════════════════════════════════════════════════

# Rendered lines are keyed by client-supplied text, so the cache is bounded
MATH_CACHE_SIZE = 512

# Ruled answer rows per part: about 1.1 per mark, within these bounds
MIN_ANSWER_LINES = 2
MAX_ANSWER_LINES = 40

# Matches $$...$$  or  $...$
_MATH_PATTERN = re.compile(r'(\$\$[^$]+\$\$|\$[^$\n]+\$)')


def _image_from_png(data: bytes, dpi: int) -> Image:
    img = Image(BytesIO(data))
    img.drawWidth  = img.imageWidth  * (72 / dpi)
    img.drawHeight = img.imageHeight * (72 / dpi)
    img.hAlign = "LEFT"
    return img


@lru_cache(maxsize=MATH_CACHE_SIZE)
def render_math_png(text: str, fontsize: float = 11, dpi: int = 220) -> Optional[bytes]:
    """PNG bytes for one line of mixed text and math, or None if mathtext rejects it."""
    try:
        fig = plt.figure(figsize=(0.01, 0.01))
        fig.patch.set_alpha(0)
        t = fig.text(0.0, 0.0, text, fontsize=fontsize, color="black",
                     va="bottom", ha="left")
        fig.canvas.draw()
        bbox = t.get_window_extent(renderer=fig.canvas.get_renderer())
        fig.set_size_inches(max(bbox.width / fig.dpi + 0.05, 0.3),
                            max(bbox.height / fig.dpi + 0.05, 0.2))

        buf = BytesIO()
        fig.savefig(buf, format="png", dpi=dpi, bbox_inches="tight",
                    transparent=True, pad_inches=0.01)
        plt.close(fig)
    except Exception:
        plt.close("all")
        return None

    return buf.getvalue()


def math_to_image(text: str, fontsize: float = 11, dpi: int = 220) -> Optional[Image]:
    """Render ``text`` (plain words plus $...$ fragments) to an Image, or None."""
    raw = render_math_png(text, fontsize, dpi)
    if raw is None:
        return None
    return _image_from_png(raw, dpi)


def to_mathtext(line: str) -> str:
    """mathtext has no display mode: $$x$$ becomes $x$."""
    return _MATH_PATTERN.sub(lambda m: "$" + m.group(0).strip("$").strip() + "$", line)


def wrap_math_line(line: str, width: int = 88) -> List[str]:
    """Greedy word wrap that never splits a $...$ fragment."""
    tokens = []
    for part in re.split(r'(\$[^$]+\$)', line):
        if part.startswith("$") and part.endswith("$") and len(part) > 1:
            tokens.append(part)
        else:
            tokens.extend(part.split())

    lines, current, used = [], [], 0
    for tok in tokens:
        # LaTeX source is wider than what it renders to
        cost = math.ceil(len(tok) * 0.6) if tok.startswith("$") else len(tok)
        if current and used + cost + 1 > width:
            lines.append(" ".join(current))
            current, used = [], 0
        current.append(tok)
        used += cost + 1
    if current:
        lines.append(" ".join(current))
    return lines


# ═══════════════════════════════════════════════════════════════════════
# FONT REGISTRATION
# ═══════════════════════════════════════════════════════════════════════

_fonts_registered = False


def register_fonts():
    """Use the DejaVu Sans that ships with matplotlib (covers π, √, θ ...)."""
    global _fonts_registered
    if _fonts_registered:
        return
    ttf_dir = os.path.join(matplotlib.get_data_path(), "fonts", "ttf")
    try:
        pdfmetrics.registerFont(TTFont("DejaVu", os.path.join(ttf_dir, "DejaVuSans.ttf")))
        pdfmetrics.registerFont(TTFont("DejaVu-Bold", os.path.join(ttf_dir, "DejaVuSans-Bold.ttf")))
    except Exception:
        pass
    _fonts_registered = True


def _font_or(name: str, fallback: str) -> str:
    register_fonts()
    try:
        pdfmetrics.getFont(name)
        return name
    except Exception:
        return fallback


def bold_font():
    return _font_or("DejaVu-Bold", "Helvetica-Bold")


def body_font():
    return _font_or("DejaVu", "Helvetica")


# ═══════════════════════════════════════════════════════════════════════
# TEXT HELPERS
# ═══════════════════════════════════════════════════════════════════════

def _escape_xml(s: Any) -> str:
    return str(s).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _marks_label(marks: Any) -> str:
    return f"[{marks} mark{'' if marks == 1 else 's'}]"


def rich_text(text: Any, style, math_fontsize: float = 11) -> list:
    """
    Flowables for a block of model text. Plain lines become Paragraphs;
    lines containing math are wrapped and rendered as images, falling back
    to monospace text when mathtext can't parse them.
    """
    flowables = []
    for line in str(text or "").split("\n"):
        if not line.strip():
            continue
        if not _MATH_PATTERN.search(line):
            flowables.append(Paragraph(_escape_xml(line), style))
            continue
        for chunk in wrap_math_line(to_mathtext(line)):
            img = math_to_image(chunk, fontsize=math_fontsize)
            if img:
                flowables.append(img)
            else:
                flowables.append(Paragraph(
                    f"<font name='Courier'>{_escape_xml(chunk)}</font>", style))
    return flowables


# ═══════════════════════════════════════════════════════════════════════
# PAGE CANVAS CALLBACKS (footer on every page)
# ═══════════════════════════════════════════════════════════════════════

class ExamPageCanvas:
    """Adds page number and document label to every page."""
    def __init__(self, label: str):
        self.label = label

    def __call__(self, canvas, doc):
        canvas.saveState()
        canvas.setFont(body_font(), 8)
        canvas.setFillColor(HexColor("#aaaaaa"))
        canvas.drawString(28, 16, self.label)
        canvas.drawRightString(A4[0] - 28, 16, f"Page {doc.page}")
        canvas.setStrokeColor(HexColor("#dddddd"))
        canvas.setLineWidth(0.5)
        canvas.line(28, 24, A4[0] - 28, 24)
        canvas.restoreState()


# ═══════════════════════════════════════════════════════════════════════
# STYLES BUILDER
# ═══════════════════════════════════════════════════════════════════════

NAVY       = HexColor("#1a2340")
FOREST     = HexColor("#0f2d1a")
MS_GREEN   = HexColor("#2e7d32")
NOTE_RED   = HexColor("#c0392b")
PAGE_W     = A4[0] - 56  # usable width


def build_styles():
    bf  = bold_font()
    bdf = body_font()

    styles = getSampleStyleSheet()

    def add(name, **kw):
        if name not in styles:
            styles.add(ParagraphStyle(name=name, **kw))

    add("Banner",
        fontName=bdf, fontSize=7.5, alignment=TA_CENTER,
        textColor=HexColor("#b8bfd6"), leading=10, spaceAfter=4)
    add("ExamTitle",
        fontName=bf, fontSize=17, alignment=TA_CENTER,
        textColor=HexColor("#ffffff"), leading=21, spaceAfter=3)
    add("ExamSubtitle",
        fontName=bdf, fontSize=10, alignment=TA_CENTER,
        textColor=HexColor("#d0d4e4"), leading=13)
    add("Meta",
        fontName=bdf, fontSize=9, textColor=HexColor("#555555"), leading=12)
    add("MetaRight",
        fontName=bdf, fontSize=9, alignment=TA_RIGHT,
        textColor=HexColor("#555555"), leading=12)
    add("BlockHeader",
        fontName=bf, fontSize=8.5, textColor=HexColor("#777777"),
        leading=12, spaceAfter=4)
    add("Instructions",
        fontName=bdf, fontSize=9.5, textColor=HexColor("#333333"),
        leading=14, spaceAfter=2, leftIndent=10)
    add("QNumber",
        fontName=bf, fontSize=12, textColor=NAVY, leading=16)
    add("Topic",
        fontName=bdf, fontSize=8.5, alignment=TA_RIGHT,
        textColor=HexColor("#3c5a99"), leading=12)
    add("Context",
        fontName="Helvetica-Oblique", fontSize=10.5,
        textColor=HexColor("#444444"), leading=15, spaceAfter=4)
    add("PartLabel",
        fontName=bf, fontSize=10.5, textColor=NAVY, leading=15)
    add("QBody",
        fontName=bdf, fontSize=10.5, alignment=TA_LEFT,
        leading=15, spaceAfter=3)
    add("Marks",
        fontName=bdf, fontSize=9, alignment=TA_RIGHT,
        textColor=HexColor("#888888"), leading=12)
    add("Closing",
        fontName=bdf, fontSize=8.5, alignment=TA_CENTER,
        textColor=HexColor("#aaaaaa"), leading=12, spaceBefore=10)
    add("MSQuestion",
        fontName=bf, fontSize=13, textColor=FOREST,
        leading=17, spaceBefore=6, spaceAfter=4)
    add("MSPart",
        fontName=bf, fontSize=10, textColor=MS_GREEN, leading=14, spaceAfter=3)
    add("MSBreakdown",
        fontName=bdf, fontSize=9, textColor=MS_GREEN, leading=12, leftIndent=12)
    add("MSAnswer",
        fontName=bf, fontSize=10.5, textColor=FOREST, leading=14, spaceBefore=3)
    add("ExaminerNote",
        fontName="Helvetica-Oblique", fontSize=9, textColor=NOTE_RED,
        leading=12, spaceBefore=3, spaceAfter=4)

    return styles


# ═══════════════════════════════════════════════════════════════════════
# SHARED BLOCKS
# ═══════════════════════════════════════════════════════════════════════

def _header_banner(styles, kicker: str, title: str, subtitle: str, color) -> Table:
    cell = [
        Paragraph(_escape_xml(kicker).upper(), styles["Banner"]),
        Paragraph(f"<b>{_escape_xml(title)}</b>", styles["ExamTitle"]),
    ]
    if subtitle:
        cell.append(Paragraph(_escape_xml(subtitle), styles["ExamSubtitle"]))
    tbl = Table([[cell]], colWidths=[PAGE_W])
    tbl.setStyle(TableStyle([
        ("BACKGROUND",    (0, 0), (-1, -1), color),
        ("TOPPADDING",    (0, 0), (-1, -1), 18),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 18),
        ("LEFTPADDING",   (0, 0), (-1, -1), 16),
        ("RIGHTPADDING",  (0, 0), (-1, -1), 16),
    ]))
    return tbl


def _boxed(rows, background: str, border: str) -> Table:
    tbl = Table([[rows]], colWidths=[PAGE_W])
    tbl.setStyle(TableStyle([
        ("BACKGROUND",    (0, 0), (-1, -1), HexColor(background)),
        ("BOX",           (0, 0), (-1, -1), 0.6, HexColor(border)),
        ("TOPPADDING",    (0, 0), (-1, -1), 7),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 7),
        ("LEFTPADDING",   (0, 0), (-1, -1), 12),
        ("RIGHTPADDING",  (0, 0), (-1, -1), 12),
    ]))
    return tbl


def answer_line_count(marks: Any) -> int:
    if isinstance(marks, bool) or not isinstance(marks, (int, float)) or not math.isfinite(marks):
        return MIN_ANSWER_LINES
    return min(max(MIN_ANSWER_LINES, math.ceil(marks * 1.1)), MAX_ANSWER_LINES)


def _answer_lines(marks: Any) -> Table:
    n = answer_line_count(marks)
    tbl = Table([[""]] * n, colWidths=[PAGE_W - 24], rowHeights=[18] * n)
    tbl.setStyle(TableStyle([
        ("LINEBELOW", (0, 0), (-1, -1), 0.4, HexColor("#cccccc")),
    ]))
    tbl.hAlign = "RIGHT"
    return tbl


def _build(elements, label: str) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=A4,
        rightMargin=28, leftMargin=28,
        topMargin=30, bottomMargin=34,
        title=label,
    )
    page_cb = ExamPageCanvas(label)
    doc.build(elements, onFirstPage=page_cb, onLaterPages=page_cb)
    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


# ═══════════════════════════════════════════════════════════════════════
# EXAM PAPER
# ═══════════════════════════════════════════════════════════════════════

def create_exam_pdf(exam: Dict[str, Any]) -> bytes:
    exam      = _as_dict(exam)
    styles    = build_styles()
    title     = exam.get("title") or "Mock Examination"
    questions = _as_list(exam.get("questions"))

    elements = [
        _header_banner(styles, "International Baccalaureate · Mock Examination",
                       title, exam.get("subtitle") or "", NAVY),
    ]

    meta = Table([[
        Paragraph(f"Duration: <b>{_escape_xml(exam.get('duration') or '—')}</b>", styles["Meta"]),
        Paragraph(f"Total Marks: <b>{_escape_xml(exam.get('totalMarks', '—'))}</b>", styles["Meta"]),
        Paragraph(f"Questions: <b>{len(questions)}</b>", styles["MetaRight"]),
    ]], colWidths=[PAGE_W / 3] * 3)
    meta.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), HexColor("#f0f0f0")),
        ("LINEBELOW",  (0, 0), (-1, -1), 1.5, HexColor("#d0d0d0")),
    ]))
    elements += [meta, Spacer(1, 8)]

    instructions = _as_list(exam.get("instructions"))
    if instructions:
        rows = [Paragraph("INSTRUCTIONS TO CANDIDATES", styles["BlockHeader"])]
        rows += [Paragraph(f"• {_escape_xml(i)}", styles["Instructions"]) for i in instructions]
        elements += [_boxed(rows, "#fafafa", "#e0e0e0"), Spacer(1, 10)]

    for q in questions:
        q = _as_dict(q)
        head = Table([[
            Paragraph(f"Question {_escape_xml(q.get('number', ''))}", styles["QNumber"]),
            Paragraph(_escape_xml(q.get("topic") or ""), styles["Topic"]),
        ]], colWidths=[PAGE_W * 0.6, PAGE_W * 0.4])
        head.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "BOTTOM")]))
        block = [head, Spacer(1, 4)]
        if q.get("context"):
            block += rich_text(q["context"], styles["Context"])
        elements.append(KeepTogether(block))

        for part in _as_list(q.get("parts")):
            part = _as_dict(part)
            label_row = Table([[
                Paragraph(f"({_escape_xml(part.get('label', ''))})", styles["PartLabel"]),
                Paragraph(_marks_label(part.get("marks", "?")), styles["Marks"]),
            ]], colWidths=[PAGE_W * 0.7, PAGE_W * 0.3])
            elements.append(KeepTogether([label_row] + rich_text(part.get("text"), styles["QBody"])))
            elements.append(_answer_lines(part.get("marks")))
            elements.append(Spacer(1, 8))

        if q.get("totalMarks") is not None:
            elements.append(Paragraph(f"[{_escape_xml(q['totalMarks'])} marks]", styles["Marks"]))
        elements.append(HRFlowable(width="100%", thickness=0.5,
                                   color=HexColor("#eeeeee"), spaceBefore=4, spaceAfter=8))

    elements.append(Paragraph("End of Examination · Generated by MockPaper AI", styles["Closing"]))
    return _build(elements, f"{title} — Question Paper")


# ═══════════════════════════════════════════════════════════════════════
# MARK SCHEME
# ═══════════════════════════════════════════════════════════════════════

MARK_LEGEND = [
    ("M1", "Method"),
    ("A1", "Accuracy"),
    ("ft", "Follow-through"),
    ("AG", "Answer given"),
    ("R1", "Reasoning"),
]


def create_mark_scheme_pdf(mark_scheme: Dict[str, Any], exam: Optional[Dict[str, Any]] = None) -> bytes:
    ms     = _as_dict(mark_scheme)
    exam   = _as_dict(exam)
    styles = build_styles()
    title  = exam.get("title") or "Mock Examination"

    subtitle = " · ".join(
        str(s) for s in (exam.get("subtitle"),
                         f"{exam['totalMarks']} marks" if exam.get("totalMarks") is not None else None)
        if s
    )
    elements = [
        _header_banner(styles, "International Baccalaureate · Mark Scheme", title, subtitle, FOREST),
        Spacer(1, 6),
    ]

    legend = "    ".join(f"<b>{code}</b> {desc}" for code, desc in MARK_LEGEND)
    elements += [_boxed([Paragraph(legend, styles["Meta"])], "#f0faf4", "#c8e6c9"), Spacer(1, 8)]

    for q in _as_list(ms.get("questions")):
        q = _as_dict(q)
        elements.append(Paragraph(f"Question {_escape_xml(q.get('number', ''))}", styles["MSQuestion"]))
        elements.append(HRFlowable(width="100%", thickness=0.5,
                                   color=HexColor("#e0e0e0"), spaceAfter=6))

        for part in _as_list(q.get("parts")):
            part = _as_dict(part)
            rows = [Paragraph(f"Part ({_escape_xml(part.get('label', ''))})", styles["MSPart"])]
            rows += rich_text(part.get("solution"), styles["QBody"])
            for m in _as_list(part.get("marks_breakdown")):
                rows.append(Paragraph(f"▸ {_escape_xml(m)}", styles["MSBreakdown"]))
            if part.get("answer"):
                rows.append(Paragraph("Answer:", styles["MSAnswer"]))
                rows += rich_text(part["answer"], styles["QBody"])
            if part.get("examiner_note"):
                rows.append(Paragraph(
                    f"Examiner note: {_escape_xml(part['examiner_note'])}", styles["ExaminerNote"]))
            elements += [_boxed(rows, "#f9fef9", "#a5d6a7"), Spacer(1, 8)]

    elements.append(Paragraph("End of Mark Scheme · Generated by MockPaper AI", styles["Closing"]))
    return _build(elements, f"{title} — Mark Scheme")


# ═══════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════

def pdf_filename(exam: Dict[str, Any], document: str) -> str:
    name = re.sub(r"\s+", "_", str(_as_dict(exam).get("title") or "Exam")).replace("/", "-")
    return f"{name}_MarkScheme.pdf" if document == "markScheme" else f"{name}_Paper.pdf"


def create_pdf(data: Dict[str, Any], document: str = "exam") -> bytes:
    """Render one of the two generated documents; ``document`` is "exam" or "markScheme"."""
    if document not in DOCUMENTS:
        raise ValueError(f"Unknown document: {document}")
    if document == "markScheme":
        return create_mark_scheme_pdf(data.get("markScheme"), data.get("exam"))
    return create_exam_pdf(data.get("exam"))
