"""
Módulo de Facturación (Invoices)

Facturas de venta de cada tienda y su conciliación de pagos:

- Creación de facturas con líneas, descuentos e impuesto
- Numeración global INV-XXXXXXXX (única en todo el sistema)
- Libro de pagos: pagos parciales y completos, estado derivado
- Resolución de facturas por id interno o por número (con o sin prefijo)
- Recordatorios de cobro y estadísticas por estado

Aislamiento multi-tenant: la tienda siempre sale del token; acceder a una
factura de otra tienda es Forbidden (se registra) y se presenta igual que
una factura inexistente.

Tablas principales:
- invoices: Facturas de venta
- invoice_line_items: Ítems de factura
- payments: Pagos de facturas
- invoice_reminders: Recordatorios enviados
"""

from .models import Invoice, InvoiceLineItem, Payment, InvoiceReminder, InvoiceStatus
from .schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceDetail,
    PaymentCreate, PaymentOut
)
from .service import InvoiceService
from .router import router

__all__ = [
    "Invoice", "InvoiceLineItem", "Payment", "InvoiceReminder", "InvoiceStatus",
    "InvoiceCreate", "InvoiceUpdate", "InvoiceDetail",
    "PaymentCreate", "PaymentOut",
    "InvoiceService",
    "router"
]
