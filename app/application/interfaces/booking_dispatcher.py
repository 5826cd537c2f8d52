from abc import ABC, abstractmethod


class BookingDispatcher(ABC):
    """Runs orchestrations in the background; callers get control back immediately."""

    @abstractmethod
    async def dispatch(self, correlation_id: str) -> bool:
        """
        Starts driving the attempt unless it is already running.

        Returns False when a worker for this correlation id is already active.
        """
        raise NotImplementedError
