"""Utilities to export supplier statements and ledgers as Excel workbooks or PDFs."""

from decimal import Decimal
from io import BytesIO
from typing import Mapping, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle


__all__ = [
    "generate_ledger_workbook",
    "generate_supplier_statement_workbook",
    "generate_supplier_statement_pdf",
]


HEADER_FILL = PatternFill(start_color="305496", end_color="305496", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
TOTAL_FILL = PatternFill(start_color="F2F2F2", end_color="F2F2F2", fill_type="solid")
CURRENCY_NUMBER_FORMAT = "#,##0.00"

INVOICE_HEADER = ["Invoice", "Date", "Due", "Status", "Total", "Paid", "Outstanding"]
PAYMENT_HEADER = ["Payment", "Date", "Invoice", "Account", "Amount"]
LEDGER_HEADER = ["Date", "Description", "Reference", "Type", "Amount", "Balance"]


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _format_currency(value) -> str:
    return f"{_to_decimal(value):,.2f}"


def _format_date(value) -> str:
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d")


def _auto_size_columns(worksheet) -> None:
    for column_cells in worksheet.columns:
        column_letter = get_column_letter(column_cells[0].column)
        max_length = 0
        for cell in column_cells:
            if cell.value is None:
                continue
            max_length = max(max_length, len(str(cell.value)))
        worksheet.column_dimensions[column_letter].width = min(max_length + 2, 45)


def _append_header(worksheet, header: Sequence[str]) -> None:
    worksheet.append(list(header))
    for cell in worksheet[worksheet.max_row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _money_cells(worksheet, columns: Sequence[int]) -> None:
    row = worksheet[worksheet.max_row]
    for index in columns:
        row[index].number_format = CURRENCY_NUMBER_FORMAT
        row[index].alignment = Alignment(horizontal="right")


def _append_total(worksheet, values: Sequence, money_columns: Sequence[int]) -> None:
    worksheet.append(list(values))
    row = worksheet[worksheet.max_row]
    for cell in row:
        if cell.value not in (None, ""):
            cell.font = Font(bold=True)
            cell.fill = TOTAL_FILL
    _money_cells(worksheet, money_columns)


def _save(workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def generate_supplier_statement_workbook(statement: Mapping) -> bytes:
    """Return an Excel workbook with the supplier's invoices and payments."""

    summary = statement.get("summary", {})

    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Statement"

    worksheet["A1"] = f"Supplier Statement - {statement.get('supplier_name', '')}"
    worksheet["A1"].font = Font(size=14, bold=True)
    worksheet["A2"] = statement.get("company_name") or ""
    worksheet["A2"].font = Font(italic=True)
    worksheet.append([])

    for label, value in (
        ("Opening Balance", statement.get("opening_balance")),
        ("Total Purchases", summary.get("total_purchases")),
        ("Total Payments", summary.get("total_payments")),
        ("Outstanding Balance", summary.get("outstanding_balance")),
    ):
        worksheet.append([label, float(_to_decimal(value))])
        worksheet[worksheet.max_row][0].font = Font(bold=True)
        _money_cells(worksheet, [1])
    worksheet.append([])

    worksheet.append(["Purchase Invoices"])
    worksheet[worksheet.max_row][0].font = Font(size=12, bold=True)
    _append_header(worksheet, INVOICE_HEADER)
    for invoice in statement.get("invoices", []):
        worksheet.append([
            invoice["invoice_number"],
            _format_date(invoice.get("invoice_date")),
            _format_date(invoice.get("due_date")),
            invoice.get("payment_status", ""),
            float(_to_decimal(invoice.get("total_amount"))),
            float(_to_decimal(invoice.get("paid_amount"))),
            float(_to_decimal(invoice.get("outstanding_amount"))),
        ])
        _money_cells(worksheet, [4, 5, 6])
    worksheet.append([])

    worksheet.append(["Payments"])
    worksheet[worksheet.max_row][0].font = Font(size=12, bold=True)
    _append_header(worksheet, PAYMENT_HEADER)
    for payment in statement.get("payments", []):
        worksheet.append([
            payment["payment_number"],
            _format_date(payment.get("payment_date")),
            payment.get("invoice_number") or "Direct",
            payment.get("account_name", ""),
            float(_to_decimal(payment.get("amount"))),
        ])
        _money_cells(worksheet, [4])
    _append_total(worksheet, ["", "", "", "Total Payments", float(_to_decimal(summary.get("total_payments")))], [4])

    _auto_size_columns(worksheet)
    return _save(workbook)


def generate_supplier_statement_pdf(statement: Mapping) -> bytes:
    """Return a PDF version of the supplier statement."""

    summary = statement.get("summary", {})

    buffer = BytesIO()
    document = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title="Supplier Statement",
    )
    styles = getSampleStyleSheet()

    story = [
        Paragraph(f"Supplier Statement - {statement.get('supplier_name', '')}", styles["Title"]),
        Spacer(1, 4 * mm),
    ]
    if statement.get("company_name"):
        story.append(Paragraph(statement["company_name"], styles["Normal"]))
    story.extend([
        Paragraph(f"Opening balance: {_format_currency(statement.get('opening_balance'))}", styles["Normal"]),
        Paragraph(f"Outstanding balance: {_format_currency(summary.get('outstanding_balance'))}", styles["Normal"]),
        Spacer(1, 6 * mm),
        Paragraph("Purchase Invoices", styles["Heading2"]),
    ])

    invoice_rows: list[list[str]] = [INVOICE_HEADER]
    for invoice in statement.get("invoices", []):
        invoice_rows.append([
            invoice["invoice_number"],
            _format_date(invoice.get("invoice_date")),
            _format_date(invoice.get("due_date")),
            invoice.get("payment_status", ""),
            _format_currency(invoice.get("total_amount")),
            _format_currency(invoice.get("paid_amount")),
            _format_currency(invoice.get("outstanding_amount")),
        ])
    invoice_rows.append(["", "", "", "Total", _format_currency(summary.get("total_purchases")), "", ""])
    story.append(_pdf_table(invoice_rows, money_from=4))

    story.extend([Spacer(1, 6 * mm), Paragraph("Payments", styles["Heading2"])])
    payment_rows: list[list[str]] = [PAYMENT_HEADER]
    for payment in statement.get("payments", []):
        payment_rows.append([
            payment["payment_number"],
            _format_date(payment.get("payment_date")),
            payment.get("invoice_number") or "Direct",
            payment.get("account_name", ""),
            _format_currency(payment.get("amount")),
        ])
    payment_rows.append(["", "", "", "Total", _format_currency(summary.get("total_payments"))])
    story.append(_pdf_table(payment_rows, money_from=4))

    document.build(story)
    pdf = buffer.getvalue()
    buffer.close()
    return pdf


def _pdf_table(rows: list[list[str]], money_from: int) -> Table:
    table = Table(rows, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#305496")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (money_from, 1), (-1, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor("#F2F2F2")),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#CCCCCC")),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return table


def generate_ledger_workbook(title: str, rows: Sequence[Mapping]) -> bytes:
    """Return an Excel workbook listing ledger rows with running balances.

    ``rows`` use the keys produced by the ledger service: ``date``,
    ``description``, ``reference``, ``type``, ``amount`` and ``balance``.
    """

    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Ledger"

    worksheet["A1"] = title
    worksheet["A1"].font = Font(size=14, bold=True)
    worksheet.append([])
    _append_header(worksheet, LEDGER_HEADER)

    for row in rows:
        date_value = row.get("date")
        worksheet.append([
            date_value.strftime("%Y-%m-%d %H:%M") if date_value else "",
            row.get("description", ""),
            row.get("reference") or "",
            row.get("type", ""),
            float(_to_decimal(row.get("amount"))),
            float(_to_decimal(row.get("balance"))),
        ])
        _money_cells(worksheet, [4, 5])

    if rows:
        _append_total(
            worksheet,
            ["", "", "", "Closing Balance", "", float(_to_decimal(rows[-1].get("balance")))],
            [5],
        )

    _auto_size_columns(worksheet)
    return _save(workbook)
