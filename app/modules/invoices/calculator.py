"""
Calculadora monetaria para facturas y GRN

Funciones puras sobre ``Decimal``. Todo resultado monetario se redondea a
2 decimales (ROUND_HALF_UP) en el momento en que se calcula, nunca al mostrarlo.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from app.common.exceptions import InvalidArgumentError
from app.modules.invoices.models import DiscountType

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() evita arrastrar el error binario de los float
    return Decimal(str(value))


def to_money(value: Optional[Number]) -> Decimal:
    """Redondear a precisión de moneda (0.01)"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: Number, unit_price: Number) -> Decimal:
    return to_money(to_decimal(quantity) * to_decimal(unit_price))


def apply_discount(
    original_price: Number,
    discount_type: DiscountType,
    discount_value: Optional[Number]
) -> Decimal:
    """
    Calcular el precio unitario después del descuento

    PERCENTAGE: original * (1 - valor/100)
    FIXED: original - valor
    El resultado nunca es negativo y se redondea una sola vez aquí.
    """
    original = to_decimal(original_price)
    value = to_decimal(discount_value)

    if discount_type == DiscountType.PERCENTAGE:
        price = original * (Decimal("1") - value / HUNDRED)
    elif discount_type == DiscountType.FIXED:
        price = original - value
    else:
        price = original

    return to_money(max(price, Decimal("0")))


def subtotal(items: Iterable) -> Decimal:
    """Suma de cantidad * precio original (antes de descuentos)"""
    return to_money(sum(
        (to_decimal(item.quantity) * to_decimal(item.original_unit_price) for item in items),
        Decimal("0")
    ))


def discount_total(items: Iterable) -> Decimal:
    """Suma de cantidad * (precio original - precio final) de cada línea"""
    return to_money(sum(
        (to_decimal(item.quantity) * (to_decimal(item.original_unit_price) - to_decimal(item.unit_price))
         for item in items),
        Decimal("0")
    ))


def grand_total(subtotal_amount: Number, tax: Number, discount: Number) -> Decimal:
    total = to_decimal(subtotal_amount) + to_decimal(tax) - to_decimal(discount)
    return to_money(max(total, Decimal("0")))


@dataclass
class PricedLine:
    quantity: Decimal
    original_unit_price: Decimal
    unit_price: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    line_total: Decimal


def price_line(
    quantity: Number,
    unit_price: Optional[Number] = None,
    original_unit_price: Optional[Number] = None,
    discount_type: Optional[DiscountType] = None,
    discount_value: Optional[Number] = None
) -> PricedLine:
    """
    Normalizar una línea entrante

    - ``original_unit_price`` toma el valor de ``unit_price`` si no viene.
    - Con descuento (PERCENTAGE/FIXED) el precio final se deriva del original.
    - Sin descuento, un ``unit_price`` menor al original es un ajuste manual
      y cuenta como descuento de la línea.
    """
    qty = to_decimal(quantity)
    if qty <= 0:
        raise InvalidArgumentError("La cantidad debe ser mayor a 0")

    if unit_price is None and original_unit_price is None:
        raise InvalidArgumentError("Cada ítem requiere unitPrice u originalUnitPrice")

    original = to_money(original_unit_price if original_unit_price is not None else unit_price)
    if original < 0 or (unit_price is not None and to_decimal(unit_price) < 0):
        raise InvalidArgumentError("El precio unitario no puede ser negativo")

    discount_type = discount_type or DiscountType.NONE
    value = to_money(discount_value)
    if value < 0:
        raise InvalidArgumentError("El descuento no puede ser negativo")

    if discount_type != DiscountType.NONE:
        final = apply_discount(original, discount_type, value)
    else:
        value = ZERO
        final = to_money(unit_price) if unit_price is not None else original
        if final > original:
            raise InvalidArgumentError("El precio unitario no puede superar el precio original")

    return PricedLine(
        quantity=qty,
        original_unit_price=original,
        unit_price=final,
        discount_type=discount_type,
        discount_value=value,
        line_total=line_total(qty, final)
    )
