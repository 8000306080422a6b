from types import TracebackType
from typing import Protocol, Self


class TransactionContext(Protocol):
    """
    A unit of work shared by several persistence calls.

    Entering it opens the unit; leaving it commits, or rolls back when the block raised.
    Repositories receive it as the ``transaction`` argument and must run the call inside it.
    """

    async def __aenter__(self) -> Self:
        ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool | None:
        ...


class TransactionFactory(Protocol):
    def __call__(self) -> TransactionContext:
        ...
