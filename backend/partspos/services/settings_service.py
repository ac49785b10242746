# Overview: Shop settings (exchange rate) stored as key/value rows.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import SystemSetting
from ..models.settings import SETTING_EXCHANGE_RATE
from ..money import format_rate, to_rate
from .concurrency import run_with_retry


def get_setting(key: str) -> SystemSetting | None:
    return db.session.get(SystemSetting, key)


def get_exchange_rate() -> Decimal:
    """Current AFN-per-USD rate; falls back to DEFAULT_EXCHANGE_RATE."""
    setting = get_setting(SETTING_EXCHANGE_RATE)
    if setting is not None:
        return to_rate(setting.value)
    return to_rate(current_app.config.get("DEFAULT_EXCHANGE_RATE", "70"))


def set_exchange_rate(rate: Decimal, *, user_id: int | None = None) -> SystemSetting:
    rate = to_rate(rate)

    def _op():
        setting = get_setting(SETTING_EXCHANGE_RATE)
        if setting is None:
            setting = SystemSetting(
                key=SETTING_EXCHANGE_RATE,
                description="AFN per USD used for new sales and lending",
            )
            db.session.add(setting)
        setting.value = format_rate(rate)
        setting.updated_by_user_id = user_id
        db.session.flush()
        return setting

    return run_with_retry(_op)
