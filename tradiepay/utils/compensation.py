"""Scoped compensation for "reserve externally, then write locally" sequences."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


@contextmanager
def compensate_on_error(
    release: Callable[[], Any],
    *,
    description: str,
    extra: dict[str, Any] | None = None,
) -> Iterator[None]:
    """Run ``release`` if the wrapped block exits with any exception.

    The original exception always propagates. A failing ``release`` is logged and
    swallowed so it never masks the local failure that triggered it; whatever it
    leaves behind is picked up by reconciliation.

    Usage::

        intent = processor.create_held_payment(...)
        with compensate_on_error(lambda: processor.cancel_held_payment(intent.ref),
                                 description="cancel held payment"):
            db.add(EscrowPayment(...))
            db.commit()
    """

    context = dict(extra or {})
    try:
        yield
    except BaseException:
        logger.warning("Local write failed; running compensation", extra={"compensation": description, **context})
        try:
            release()
        except Exception:
            logger.critical(
                "Compensation failed; external resource left for reconciliation",
                exc_info=True,
                extra={"compensation": description, **context},
            )
        else:
            logger.info("Compensation completed", extra={"compensation": description, **context})
        raise


__all__ = ["compensate_on_error"]
