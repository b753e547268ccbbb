from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional

from ..schemas.market import EconomicEvent

# scheduled FOMC decision days
FOMC_DATES = [
    "2024-01-31", "2024-03-20", "2024-05-01", "2024-06-12",
    "2024-07-31", "2024-09-18", "2024-11-07", "2024-12-18",
    "2025-01-29", "2025-03-19", "2025-05-07", "2025-06-18",
    "2025-07-30", "2025-09-17", "2025-11-05", "2025-12-17",
    "2026-01-28", "2026-03-18",
]


def first_friday(year: int, month: int) -> date:
    d = date(year, month, 1)
    return d + timedelta(days=(4 - d.weekday()) % 7)


def upcoming_economic_events(today: date, days_ahead: int = 7) -> List[EconomicEvent]:
    """Heuristic calendar: CPI on the 12th, NFP on the first Friday, Retail Sales
    on the 15th of the current month, plus the published FOMC days."""
    end = today + timedelta(days=days_ahead)

    def in_window(d: date) -> bool:
        return today <= d <= end

    out: List[EconomicEvent] = []
    cpi = date(today.year, today.month, 12)
    if in_window(cpi):
        out.append(EconomicEvent(date=cpi.isoformat(), time="08:30 ET", event="CPI (Consumer Price Index)", impact="high"))
    nfp = first_friday(today.year, today.month)
    if in_window(nfp):
        out.append(EconomicEvent(date=nfp.isoformat(), time="08:30 ET", event="Non-Farm Payrolls (NFP)", impact="high"))
    retail = date(today.year, today.month, 15)
    if in_window(retail):
        out.append(EconomicEvent(date=retail.isoformat(), time="08:30 ET", event="Retail Sales", impact="medium"))
    for ds in FOMC_DATES:
        if in_window(date.fromisoformat(ds)):
            out.append(EconomicEvent(date=ds, time="14:00 ET", event="FOMC Rate Decision", impact="high"))

    out.sort(key=lambda e: e.date)
    return out


def high_impact_today(events: List[EconomicEvent], today: date) -> List[EconomicEvent]:
    ds = today.isoformat()
    return [e for e in events if e.date == ds and e.impact == "high"]


def volatility_level(vix: Optional[float]) -> str:
    v = vix or 0.0
    if v < 15:
        return "low"
    if v < 20:
        return "normal"
    if v < 30:
        return "high"
    return "extreme"
