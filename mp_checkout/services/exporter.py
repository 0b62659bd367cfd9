from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from openpyxl import Workbook

from ..storage.models import CheckoutLink, Payment

EXPORT_HEADERS = ["ID", "MercadoPago ID", "Status", "Valor", "Moeda", "Nome", "Email", "Método", "Data", "Produto"]


def payment_rows(payments: Iterable[Tuple[Payment, Optional[CheckoutLink]]]) -> List[list]:
    rows = []
    for payment, link in payments:
        rows.append([
            payment.id,
            payment.mercadopago_payment_id,
            payment.status,
            str(payment.amount),
            payment.currency,
            payment.payer_name or "",
            payment.payer_email or "",
            payment.payment_method or "",
            payment.created_at.strftime("%d/%m/%Y"),
            link.title if link else "",
        ])
    return rows


def export_to_csv(rows: List[list]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def export_to_xlsx(rows: List[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Pagamentos"
    ws.append(EXPORT_HEADERS)
    for row in rows:
        ws.append(row)
    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def default_filename(prefix: str, extension: str) -> str:
    return f"{prefix}_{datetime.utcnow().strftime('%Y-%m-%d')}.{extension}"
