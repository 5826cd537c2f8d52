"""Interface Scheduler - Puerto para esperas entre reintentos y sondeos."""

import asyncio
from abc import ABC, abstractmethod

from app.application.interfaces.clock import Clock, FakeClock, SystemClock


class Scheduler(ABC):
    """
    Ejecuta las esperas de las políticas de reintento.

    Los sondeos nunca llaman a `asyncio.sleep` directamente para poder
    probarse con un reloj falso.
    """

    @property
    @abstractmethod
    def clock(self) -> Clock:
        raise NotImplementedError

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Espera real sobre el event loop; no bloquea otros intentos."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FakeScheduler(Scheduler):
    """
    Implementación fake para testing.

    Registra cada espera y avanza el FakeClock sin esperar tiempo real.
    """

    def __init__(self, clock: FakeClock | None = None) -> None:
        self._clock = clock or FakeClock()
        self.sleeps: list[float] = []

    @property
    def clock(self) -> FakeClock:
        return self._clock

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._clock.advance(seconds=seconds)
        await asyncio.sleep(0)
