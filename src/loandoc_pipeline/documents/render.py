# src/loandoc_pipeline/documents/render.py

from io import BytesIO
from typing import List
from xml.sax.saxutils import escape

# --- PDF generation (ReportLab/Platypus) ---
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .tree import Bullets, DocumentTree, Heading, KeyValueTable, Note, Signature
from .tree import Paragraph as TextBlock
from .tree import Table as TableBlock

# ------------------ styles ------------------

_GRID = [
    ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.lightgrey),
    ("LEFTPADDING", (0, 0), (-1, -1), 4),
    ("RIGHTPADDING", (0, 0), (-1, -1), 6),
    ("TOPPADDING", (0, 0), (-1, -1), 3),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
]


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="DocTitle", parent=styles["Heading1"], fontSize=16, leading=20,
                              alignment=1, spaceAfter=4))
    styles.add(ParagraphStyle(name="DocSubtitle", fontSize=10, alignment=1, textColor=colors.grey))
    styles.add(ParagraphStyle(name="Body", parent=styles["BodyText"], fontSize=10, leading=14))
    styles.add(ParagraphStyle(name="Cell", parent=styles["BodyText"], fontSize=9, leading=11))
    styles.add(ParagraphStyle(name="Small", fontSize=8, textColor=colors.grey))
    return styles


def _p(text: str, style) -> Paragraph:
    return Paragraph(escape(text).replace("\n", "<br/>"), style)


# ------------------ block rendering ------------------

def _table(rows: List[List[str]], styles, header: bool, col_widths=None) -> Table:
    data = [[_p(c, styles["Cell"]) for c in row] for row in rows]
    table = Table(data, colWidths=col_widths, repeatRows=1 if header else 0)
    style = list(_GRID)
    if header:
        style.append(("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke))
    else:
        style.append(("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke))
    table.setStyle(TableStyle(style))
    return table


def _flowables(tree: DocumentTree, styles) -> list:
    elems = [_p(tree.title.upper(), styles["DocTitle"])]
    if tree.subtitle:
        elems.append(_p(tree.subtitle, styles["DocSubtitle"]))
    elems.append(HRFlowable(color=colors.black, thickness=0.8, width="100%"))
    elems.append(Spacer(1, 8))

    for block in tree.blocks:
        if isinstance(block, Heading):
            elems.append(_p(block.text, styles["Heading2" if block.level == 1 else "Heading3"]))
        elif isinstance(block, TextBlock):
            text = f"<b>{escape(block.text)}</b>" if block.bold else escape(block.text)
            elems.append(Paragraph(text, styles["Body"]))
            elems.append(Spacer(1, 4))
        elif isinstance(block, Bullets):
            for item in block.items:
                elems.append(Paragraph(escape(item), styles["Body"], bulletText="•"))
            elems.append(Spacer(1, 4))
        elif isinstance(block, KeyValueTable):
            elems.append(_table([list(r) for r in block.rows], styles, header=False, col_widths=[45*mm, 125*mm]))
            elems.append(Spacer(1, 8))
        elif isinstance(block, TableBlock):
            elems.append(_table([list(block.header)] + [list(r) for r in block.rows], styles, header=True))
            elems.append(Spacer(1, 8))
        elif isinstance(block, Signature):
            elems.append(Spacer(1, 14))
            elems.append(_p(block.party, styles["Body"]))
            elems.append(_p("By: _______________________________", styles["Body"]))
            elems.append(_p(f"Name: {block.name}", styles["Body"]))
            if block.title:
                elems.append(_p(f"Title: {block.title}", styles["Body"]))
        elif isinstance(block, Note):
            elems.append(_p(block.text, styles["Small"]))

    elems.append(Spacer(1, 10))
    elems.append(HRFlowable(color=colors.lightgrey, thickness=0.6, width="100%"))
    return elems


class PdfRenderer:
    """Callable renderer: DocumentTree -> PDF bytes (in memory, no files)."""

    def __init__(self, pagesize=LETTER) -> None:
        self.pagesize = pagesize

    def __call__(self, tree: DocumentTree) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=self.pagesize, title=tree.title,
                                leftMargin=22*mm, rightMargin=22*mm, topMargin=20*mm, bottomMargin=20*mm)
        doc.build(_flowables(tree, _styles()))
        return buffer.getvalue()
