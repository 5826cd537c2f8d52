"""Runner de orquestaciones en segundo plano."""

import asyncio
import logging

from app.application.interfaces.booking_dispatcher import BookingDispatcher
from app.application.interfaces.reservation_ledger import ReservationLedger
from app.application.use_cases.booking_orchestrator import BookingOrchestrator

logger = logging.getLogger(__name__)


class BookingTaskRunner(BookingDispatcher):
    """
    Ejecuta `BookingOrchestrator.run` como tareas de asyncio.

    Características:
    - Una sola tarea activa por correlation id
    - Recuperación al arranque de intentos sin terminar
    - Graceful shutdown

    Con `run_inline=True` el dispatch espera a que la orquestación termine;
    se usa en pruebas de endpoints para obtener resultados deterministas.
    """

    def __init__(
        self,
        orchestrator: BookingOrchestrator,
        ledger: ReservationLedger,
        run_inline: bool = False,
    ) -> None:
        """
        Inicializa el runner.

        Args:
            orchestrator: Orquestador que conduce cada intento.
            ledger: Ledger consultado en la recuperación.
            run_inline: Espera a que cada orquestación termine dentro de dispatch.
        """
        self._orchestrator = orchestrator
        self._ledger = ledger
        self._run_inline = run_inline
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def active(self) -> list[str]:
        """Correlation ids con una tarea en curso."""
        return [cid for cid, task in self._tasks.items() if not task.done()]

    async def dispatch(self, correlation_id: str) -> bool:
        task = self._tasks.get(correlation_id)
        if task is not None and not task.done():
            logger.info("Orchestration already running", extra={"correlation_id": correlation_id})
            return False

        task = asyncio.create_task(self._run(correlation_id), name=f"booking-{correlation_id}")
        self._tasks[correlation_id] = task
        task.add_done_callback(lambda _t, cid=correlation_id: self._forget(cid, _t))
        if self._run_inline:
            await task
        return True

    async def join(self, correlation_id: str) -> None:
        """Espera a que termine la tarea del correlation id, si existe."""
        task = self._tasks.get(correlation_id)
        if task is not None:
            await task

    async def recover(self) -> int:
        """
        Reanuda los intentos que quedaron sin estado terminal tras un reinicio.

        Returns:
            Número de orquestaciones despachadas.
        """
        records = await self._ledger.list_unfinished()
        dispatched = 0
        for record in records:
            if await self.dispatch(record.correlation_id):
                dispatched += 1
        if dispatched:
            logger.info("Unfinished bookings resumed", extra={"count": dispatched})
        return dispatched

    async def stop(self, timeout: float = 5.0) -> None:
        """Espera a las tareas en curso y cancela las que no terminen a tiempo."""
        pending = [task for task in self._tasks.values() if not task.done()]
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("Booking runner stopped with pending tasks", extra={"cancelled": len(still_running)})

    async def _run(self, correlation_id: str) -> None:
        try:
            record = await self._orchestrator.run(correlation_id)
            logger.info(
                "Orchestration finished",
                extra={"correlation_id": correlation_id, "state": record.state.value},
            )
        except Exception as e:
            # The ledger keeps the last recorded state; recover() or a replayed request resumes it.
            logger.exception(f"Error orquestando reservación {correlation_id}: {e}")

    def _forget(self, correlation_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(correlation_id) is task:
            del self._tasks[correlation_id]
