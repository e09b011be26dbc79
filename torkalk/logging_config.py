import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

from loguru import logger

from torkalk.config import Settings, get_settings

# Kontextvariablen fuer Kunde, Auftrag und Tor
customer_id_var: ContextVar[Optional[str]] = ContextVar("customer_id", default=None)
order_id_var: ContextVar[Optional[str]] = ContextVar("order_id", default=None)
gate_id_var: ContextVar[Optional[str]] = ContextVar("gate_id", default=None)

_FORMAT_CONSOLE = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<blue>customer_id={extra[customer_id]}</blue> | <yellow>order_id={extra[order_id]}</yellow> | "
    "<magenta>gate_id={extra[gate_id]}</magenta> | <level>{message}</level>"
)
_FORMAT_FILE = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | "
    "customer_id={extra[customer_id]} | order_id={extra[order_id]} | gate_id={extra[gate_id]} | {message}"
)


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure loguru with context-aware formatting."""
    s = settings or get_settings()

    # Standard-Handler entfernen
    logger.remove()
    logger.configure(extra={"customer_id": None, "order_id": None, "gate_id": None})

    logger.add(
        sys.stdout,
        format=_FORMAT_CONSOLE,
        level=s.log_level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if not s.log_to_file:
        return

    log_dir = Path(s.log_dir)
    log_dir.mkdir(exist_ok=True)

    logger.add(
        log_dir / "app.log",
        format=_FORMAT_FILE,
        level="DEBUG",
        rotation=s.log_rotation,
        retention=s.log_retention,
        compression="zip",
    )

    logger.add(
        log_dir / "errors.log",
        format=_FORMAT_FILE,
        level="ERROR",
        rotation=s.log_rotation,
        retention=s.log_retention,
        compression="zip",
    )


def get_logger():
    """Logger bound to the current customer/order/gate context."""
    return logger.bind(
        customer_id=customer_id_var.get(),
        order_id=order_id_var.get(),
        gate_id=gate_id_var.get(),
    )


def set_context(
    customer_id: Optional[str] = None,
    order_id: Optional[str] = None,
    gate_id: Optional[str] = None,
) -> None:
    if customer_id is not None:
        customer_id_var.set(customer_id)
    if order_id is not None:
        order_id_var.set(order_id)
    if gate_id is not None:
        gate_id_var.set(gate_id)


def clear_context() -> None:
    customer_id_var.set(None)
    order_id_var.set(None)
    gate_id_var.set(None)


class LoggingContext:
    """Context manager that scopes customer/order/gate ids for log lines."""

    def __init__(
        self,
        customer_id: Optional[str] = None,
        order_id: Optional[str] = None,
        gate_id: Optional[str] = None,
    ):
        self.customer_id = customer_id
        self.order_id = order_id
        self.gate_id = gate_id
        self._tokens = []

    def __enter__(self):
        for var, value in (
            (customer_id_var, self.customer_id),
            (order_id_var, self.order_id),
            (gate_id_var, self.gate_id),
        ):
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []
