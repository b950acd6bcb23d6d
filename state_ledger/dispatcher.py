"""
Handler Dispatcher

Maps external function names to handler callables. The map is an ordinary
object built once by its owner and handed to whoever dispatches through it.
Argument checking is left to each handler.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .exceptions import LedgerError, UnknownFunctionError, ValidationError
from .logging_config import get_logger, invocation_context


Handler = Callable[[List[str]], bytes]


@dataclass(frozen=True)
class HandlerEntry:
    handler: Handler
    read_only: bool = False


class HandlerMap:
    """Function name to handler mapping"""

    def __init__(self):
        self._handlers: Dict[str, HandlerEntry] = {}
        self.logger = get_logger("state_ledger.dispatcher")

    def add(self, function_name: str, handler: Handler, read_only: bool = False) -> None:
        """Register a handler. Registering a name twice is an error."""
        if function_name in self._handlers:
            raise ValueError(f"Handler for function {function_name} already registered")
        self._handlers[function_name] = HandlerEntry(handler, read_only)

    def functions(self) -> List[str]:
        return sorted(self._handlers)

    def handle(self, function_name: str, args: Sequence[str],
               read_only: bool = False, correlation_id: Optional[str] = None) -> bytes:
        """
        Call the handler registered for function_name

        Args:
            function_name: External function name
            args: Handler arguments
            read_only: Refuse handlers that write state
            correlation_id: Tags the call's log records, generated when omitted

        Returns:
            Handler result bytes (may be empty)

        Raises:
            UnknownFunctionError: No handler under that name
            LedgerError: Whatever the handler raised, after logging it
            Exception: Any other handler failure, logged with its traceback
        """
        with invocation_context(function_name, correlation_id):
            self.logger.debug(f"Invoking handler function {function_name} with args {list(args)}")

            try:
                entry = self._lookup(function_name)
                if read_only and not entry.read_only:
                    raise ValidationError(f"Function {function_name} modifies state and cannot be queried")
                result = entry.handler(list(args))
            except LedgerError as e:
                self.logger.error(f"Error when calling handler for function {function_name}. Error: {e}")
                raise
            except Exception:
                self.logger.exception(f"Unexpected error when calling handler for function {function_name}")
                raise

        return result if result is not None else b""

    def _lookup(self, function_name: str) -> HandlerEntry:
        entry = self._handlers.get(function_name)
        if entry is None:
            raise UnknownFunctionError(f"Unknown function {function_name}")
        return entry
