"""Value Object ReservationCode - identificador público de reservación."""

import secrets
import string
from dataclasses import dataclass


@dataclass(frozen=True)
class ReservationCode:
    """
    Identificador que ve el cliente (ej: HB-A1B2C3D4).

    El correlation id es el identificador técnico; este código es solo para mostrar.
    """

    value: str

    PREFIX = "HB-"
    CODE_LENGTH = 8
    ALLOWED_CHARS = string.ascii_uppercase + string.digits

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("reservation_code no puede estar vacío")

        if len(self.value) > 50:
            raise ValueError(f"reservation_code excede 50 caracteres: {len(self.value)}")

    def __str__(self) -> str:
        return self.value

    @classmethod
    def generate(cls) -> "ReservationCode":
        """Genera un código aleatorio con prefijo."""
        code = "".join(secrets.choice(cls.ALLOWED_CHARS) for _ in range(cls.CODE_LENGTH))
        return cls(value=f"{cls.PREFIX}{code}")
