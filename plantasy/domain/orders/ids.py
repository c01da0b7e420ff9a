from __future__ import annotations

import random

from plantasy.core.timeutil import epoch_millis

_rng = random.SystemRandom()


def generate_order_id(rng: random.Random | None = None) -> str:
    """Human-readable order id: ``OD`` followed by eight digits."""
    digits = (rng or _rng).randint(10_000_000, 99_999_999)
    return f"OD{digits:08d}"


def generate_invoice_id(millis: int | None = None) -> str:
    stamp = str(millis if millis is not None else epoch_millis())
    return f"INV{stamp[-10:]}"


def generate_failed_payment_id(millis: int | None = None, rng: random.Random | None = None) -> str:
    stamp = millis if millis is not None else epoch_millis()
    suffix = (rng or _rng).randint(0, 0xFFFFFF)
    return f"FAILED_{stamp}_{suffix:06x}"
