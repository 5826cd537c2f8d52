"""Value Object Money - representa un valor monetario con su moneda."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Redondea a 2 decimales, mitad lejos de cero."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Value Object inmutable que representa un monto monetario.

    Attributes:
        amount: Monto decimal.
        currency_code: Código ISO 4217 de la moneda (ej: SAR, USD, EUR).
    """

    amount: Decimal
    currency_code: str

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))

        if len(self.currency_code) != 3:
            raise ValueError(f"currency_code debe ser de 3 caracteres: {self.currency_code}")

        if self.amount < 0:
            raise ValueError(f"amount no puede ser negativo: {self.amount}")

    def percentage(self, percent: Decimal) -> "Money":
        """Retorna el porcentaje indicado del monto, redondeado a centavos."""
        return Money(
            amount=round_money(self.amount * Decimal(str(percent)) / Decimal("100")),
            currency_code=self.currency_code,
        )

