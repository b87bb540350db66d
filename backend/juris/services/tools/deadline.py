"""Procedural deadline calculation (CPC/CLT).

Business-day counting skips weekends and forensic holidays. Movable
holidays are derived from Easter, so any year is supported.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, timedelta
from functools import lru_cache
from typing import Any

from juris.core.exceptions import InvalidRequestError
from juris.services.tools.base import ToolCapability

BUSINESS_DAYS = "úteis"
CALENDAR_DAYS = "corridos"

# Courts of the federal judiciary also close on the days of Lei 5.010/66, art. 62
FEDERAL_COURTS = {"federal", "trabalhista", "eleitoral"}

_FIXED_NATIONAL = [
    (1, 1),  # Confraternização Universal
    (4, 21),  # Tiradentes
    (5, 1),  # Dia do Trabalho
    (9, 7),  # Independência
    (10, 12),  # Nossa Senhora Aparecida
    (11, 2),  # Finados
    (11, 15),  # Proclamação da República
    (11, 20),  # Consciência Negra
    (12, 25),  # Natal
]
_FIXED_FEDERAL = [(8, 11), (11, 1), (12, 8)]


def easter_sunday(year: int) -> date:
    """Gregorian Easter (anonymous algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7  # noqa: E741
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


@lru_cache(maxsize=64)
def forensic_holidays(year: int, court_type: str = "estadual") -> frozenset[date]:
    """Days without court activity in ``year``."""
    easter = easter_sunday(year)
    days = {date(year, month, day) for month, day in _FIXED_NATIONAL}
    days |= {
        easter - timedelta(days=48),  # Carnaval (segunda)
        easter - timedelta(days=47),  # Carnaval (terça)
        easter - timedelta(days=2),  # Sexta-feira Santa
        easter + timedelta(days=60),  # Corpus Christi
    }
    if court_type in FEDERAL_COURTS:
        days |= {date(year, month, day) for month, day in _FIXED_FEDERAL}
        days |= {easter - timedelta(days=4), easter - timedelta(days=3)}
    return frozenset(days)


def is_holiday(day: date, court_type: str = "estadual") -> bool:
    return day in forensic_holidays(day.year, court_type)


def classify_urgency(days_remaining: int) -> str:
    if days_remaining <= 3:
        return "critical"
    if days_remaining <= 7:
        return "attention"
    return "normal"


class CalculateDeadlineTool(ToolCapability):
    """Count a procedural deadline from its start date.

    The start day is excluded. With ``doubled`` the number of days is
    doubled (Fazenda Pública, litisconsortes com procuradores diferentes).
    """

    function_name = "calculate_deadline"
    description = (
        "Calcula prazos processuais conforme CPC/CLT. Considera dias úteis, "
        "corridos, feriados forenses e prazos em dobro."
    )
    parameters_schema = {
        "type": "object",
        "properties": {
            "start_date": {
                "type": "string",
                "description": "Data de início do prazo (formato: YYYY-MM-DD)",
            },
            "days": {
                "type": "integer",
                "minimum": 1,
                "description": "Quantidade de dias do prazo",
            },
            "count_type": {
                "type": "string",
                "enum": [BUSINESS_DAYS, CALENDAR_DAYS],
                "description": "Tipo de contagem (úteis ou corridos)",
            },
            "doubled": {
                "type": "boolean",
                "description": (
                    "Prazo em dobro (litisconsortes com procuradores diferentes "
                    "ou Fazenda Pública)"
                ),
                "default": False,
            },
            "court_type": {
                "type": "string",
                "enum": ["federal", "estadual", "trabalhista", "eleitoral"],
                "description": "Tipo de justiça para considerar feriados específicos",
                "default": "estadual",
            },
        },
        "required": ["start_date", "days", "count_type"],
    }

    def __init__(self, today: Callable[[], date] | None = None) -> None:
        self._today = today or date.today

    async def execute(self, parameters: dict[str, Any]) -> dict[str, Any]:
        try:
            start = date.fromisoformat(parameters["start_date"])
        except ValueError as e:
            raise InvalidRequestError(
                f"Invalid start_date '{parameters['start_date']}', expected YYYY-MM-DD"
            ) from e

        doubled = bool(parameters.get("doubled", False))
        court_type = parameters.get("court_type") or "estadual"
        count_type = parameters["count_type"]
        total_days = parameters["days"] * (2 if doubled else 1)

        current = start
        counted = 0
        holidays_in_period: list[str] = []
        while counted < total_days:
            current += timedelta(days=1)
            if count_type == CALENDAR_DAYS:
                counted += 1
                continue
            holiday = is_holiday(current, court_type)
            if holiday:
                holidays_in_period.append(current.isoformat())
            if current.weekday() < 5 and not holiday:
                counted += 1

        days_remaining = (current - self._today()).days
        is_expired = days_remaining < 0
        if is_expired:
            message = f"PRAZO VENCIDO há {abs(days_remaining)} dias!"
        else:
            message = (
                f"Prazo vence em {days_remaining} dias ({current.strftime('%d/%m/%Y')})"
            )

        return {
            "deadline_date": current.isoformat(),
            "start_date": start.isoformat(),
            "total_days": total_days,
            "count_type": count_type,
            "doubled": doubled,
            "court_type": court_type,
            "holidays_in_period": holidays_in_period,
            "days_remaining": days_remaining,
            "urgency": classify_urgency(days_remaining),
            "is_expired": is_expired,
            "message": message,
        }


__all__ = [
    "CalculateDeadlineTool",
    "classify_urgency",
    "easter_sunday",
    "forensic_holidays",
    "is_holiday",
]
