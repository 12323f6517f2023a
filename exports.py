"""
Sales report renderers.

Both take the payload built by ``analytics.collect_analytics`` and return the
finished file as bytes: a paginated A4 PDF (reportlab) and a multi-sheet
workbook (openpyxl).
"""
from datetime import datetime
from io import BytesIO
from typing import List, Optional
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.graphics.charts.barcharts import VerticalBarChart
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from config import CURRENCY, LOW_STOCK_THRESHOLD

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MARGIN = 14 * mm
HEADER_FILL = colors.HexColor("#f3f4f6")
RULE_COLOR = colors.HexColor("#e5e7eb")
MUTED = colors.HexColor("#555555")
BAR_COLOR = colors.HexColor("#3b82f6")
CELL_STYLE = ParagraphStyle("cell", fontName="Helvetica", fontSize=9, leading=11)


def format_date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    return str(value) if value else "N/A"


def format_money(value) -> str:
    return f"{CURRENCY} {float(value or 0):,.2f}"


def product_title(row: dict) -> str:
    return (row.get("product") or {}).get("title") or "Unknown"


# ----------------------- PDF -----------------------

class NumberedCanvas(canvas.Canvas):
    """Canvas that defers page output so the footer can say "Page i of n"."""

    def __init__(self, *args, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_page_number(page_count)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def draw_page_number(self, page_count: int):
        page_width, _ = A4
        self.saveState()
        self.setFont("Helvetica", 9)
        self.setFillColor(colors.HexColor("#777777"))
        self.drawRightString(page_width - MARGIN, 8 * mm, f"Page {self._pageNumber} of {page_count}")
        self.restoreState()


def _bar_chart(labels: List[str], values: List[float], width: float, height: float = 60 * mm) -> Drawing:
    drawing = Drawing(width, height)
    chart = VerticalBarChart()
    chart.x = 40
    chart.y = 30
    chart.width = width - 55
    chart.height = height - 45
    chart.data = [values]
    chart.categoryAxis.categoryNames = labels
    chart.categoryAxis.labels.fontSize = 6
    chart.categoryAxis.labels.angle = 30
    chart.categoryAxis.labels.boxAnchor = "ne"
    chart.valueAxis.labels.fontSize = 7
    chart.valueAxis.valueMin = 0
    if not any(v > 0 for v in values):
        chart.valueAxis.valueMax = 1
    chart.bars[0].fillColor = BAR_COLOR
    chart.bars[0].strokeColor = None
    drawing.add(chart)
    return drawing


def _cell(value, style: ParagraphStyle):
    if isinstance(value, str):
        return Paragraph(escape(value), style)
    return str(value)


def _table(headers: List[str], rows: List[list], col_widths_mm: Optional[List[float]] = None) -> Table:
    # Text cells become Paragraphs so long product titles wrap inside their column
    widths = [w * mm for w in col_widths_mm] if col_widths_mm else None
    table = Table([headers] + [[_cell(c, CELL_STYLE) for c in row] for row in rows], colWidths=widths, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("LINEBELOW", (0, 0), (-1, -1), 0.5, RULE_COLOR),
        ("BOX", (0, 0), (-1, -1), 0.5, RULE_COLOR),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    return table


def render_pdf(analytics: dict, site_name: str = "Admin") -> bytes:
    styles = getSampleStyleSheet()
    filters = analytics.get("filters") or {}
    overview = analytics.get("overview") or {}
    range_line = (
        f"Group: {filters.get('group_by', 'month')}  "
        f"From: {format_date(filters.get('from'))}  To: {format_date(filters.get('to'))}"
    )

    def draw_header(pdf, doc):
        page_height = A4[1]
        pdf.saveState()
        pdf.setFont("Helvetica-Bold", 14)
        pdf.drawString(MARGIN, page_height - 14 * mm, f"{site_name} - Sales Report")
        pdf.setFont("Helvetica", 10)
        pdf.setFillColor(MUTED)
        pdf.drawString(MARGIN, page_height - 19 * mm, range_line)
        pdf.restoreState()

    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=26 * mm,
        bottomMargin=18 * mm,
        title=f"{site_name} Sales Report",
    )
    chart_width = A4[0] - 2 * MARGIN

    kpis = "   |   ".join([
        f"Revenue: {format_money(overview.get('total_revenue'))}",
        f"Orders: {overview.get('total_orders', 0)}",
        f"Users: {overview.get('total_users', 0)}",
        f"Products: {overview.get('total_products', 0)}",
    ])
    story = [Paragraph(kpis, styles["Normal"]), Spacer(1, 6 * mm)]

    charts = [
        ("Revenue", analytics.get("revenue_series") or [], "revenue"),
        ("New Users", analytics.get("users_series") or [], "users"),
        ("New Products", analytics.get("products_series") or [], "products"),
    ]
    for title, series, field in charts:
        story.append(Paragraph(title, styles["Heading3"]))
        if series:
            story.append(_bar_chart([p["label"] for p in series], [float(p.get(field) or 0) for p in series], chart_width))
        else:
            story.append(Paragraph("No data for this period.", styles["Italic"]))
        story.append(Spacer(1, 4 * mm))

    status_rows = [[s.get("status"), s.get("count", 0)] for s in analytics.get("order_status_stats") or []]
    story += [Paragraph("Order Status", styles["Heading3"]), _table(["Status", "Count"], status_rows, [110, 50]), Spacer(1, 6 * mm)]

    top_rows = [
        [i + 1, product_title(tp), tp.get("total_sold", 0), format_money(tp.get("revenue"))]
        for i, tp in enumerate(analytics.get("top_products") or [])
    ]
    story += [
        Paragraph("Top Selling Products", styles["Heading3"]),
        _table(["#", "Product", "Sold", "Revenue"], top_rows, [10, 95, 25, 40]),
        Spacer(1, 6 * mm),
    ]

    low_rows = [[lp.get("title"), lp.get("quantity", 0)] for lp in analytics.get("low_stock_products") or []]
    story += [Paragraph(f"Low Stock (&lt;={LOW_STOCK_THRESHOLD})", styles["Heading3"]), _table(["Product", "Stock"], low_rows, [110, 50])]

    doc.build(story, onFirstPage=draw_header, onLaterPages=draw_header, canvasmaker=NumberedCanvas)
    return buf.getvalue()


# ----------------------- Excel -----------------------

def _add_sheet(wb: Workbook, title: str, headers: List[str], rows: List[list], widths: List[int]):
    ws = wb.create_sheet(title)
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = PatternFill("solid", fgColor="F3F4F6")
    for row in rows:
        ws.append(row)
    for idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width
    return ws


def render_xlsx(analytics: dict) -> bytes:
    filters = analytics.get("filters") or {}
    overview = analytics.get("overview") or {}

    wb = Workbook()
    wb.remove(wb.active)

    _add_sheet(wb, "Overview", ["Metric", "Value"], [
        ["Group By", filters.get("group_by", "month")],
        ["From", format_date(filters.get("from"))],
        ["To", format_date(filters.get("to"))],
        [f"Total Revenue ({CURRENCY})", overview.get("total_revenue", 0)],
        [f"Average Order Value ({CURRENCY})", overview.get("avg_order_value", 0)],
        ["Total Orders", overview.get("total_orders", 0)],
        ["Orders This Month", overview.get("monthly_orders", 0)],
        ["Total Users", overview.get("total_users", 0)],
        ["Total Products", overview.get("total_products", 0)],
    ], [28, 30])
    _add_sheet(wb, "Revenue", ["Label", "Revenue", "Orders"], [
        [r["label"], r.get("revenue", 0), r.get("orders", 0)] for r in analytics.get("revenue_series") or []
    ], [18, 18, 12])
    _add_sheet(wb, "Users", ["Label", "Users"], [
        [u["label"], u.get("users", 0)] for u in analytics.get("users_series") or []
    ], [18, 12])
    _add_sheet(wb, "Products", ["Label", "Products"], [
        [p["label"], p.get("products", 0)] for p in analytics.get("products_series") or []
    ], [18, 12])
    _add_sheet(wb, "Top Products", ["Rank", "Product", "Sold", "Revenue"], [
        [i + 1, product_title(tp), tp.get("total_sold", 0), tp.get("revenue", 0)]
        for i, tp in enumerate(analytics.get("top_products") or [])
    ], [8, 40, 10, 16])
    _add_sheet(wb, "Low Stock", ["Product", "Stock"], [
        [lp.get("title"), lp.get("quantity", 0)] for lp in analytics.get("low_stock_products") or []
    ], [40, 10])
    _add_sheet(wb, "Order Status", ["Status", "Count"], [
        [s.get("status"), s.get("count", 0)] for s in analytics.get("order_status_stats") or []
    ], [20, 10])

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
