"""
Static Saxony school holidays, used whenever no remote feed can be read.
Spans several years; callers filter to the window around today.
"""
from __future__ import annotations

# (title, first day, last day), both inclusive
_SAXONY_SCHOOL_HOLIDAYS = (
    ("Winterferien Sachsen 2023", "2023-02-13", "2023-02-24"),
    ("Osterferien Sachsen 2023", "2023-04-07", "2023-04-15"),
    ("Pfingstferien Sachsen 2023 (Beweglicher Ferientag)", "2023-05-19", "2023-05-19"),
    ("Sommerferien Sachsen 2023", "2023-07-10", "2023-08-18"),
    ("Herbstferien Sachsen 2023", "2023-10-02", "2023-10-14"),
    ("Herbstferien Sachsen 2023 (Beweglicher Ferientag)", "2023-10-30", "2023-10-30"),
    ("Weihnachtsferien Sachsen 2023", "2023-12-23", "2024-01-02"),
    ("Winterferien Sachsen 2024", "2024-02-12", "2024-02-23"),
    ("Osterferien Sachsen 2024", "2024-03-28", "2024-04-05"),
    ("Pfingstferien Sachsen 2024 (Beweglicher Ferientag)", "2024-05-10", "2024-05-10"),
    ("Pfingstferien Sachsen 2024", "2024-05-18", "2024-05-21"),
    ("Sommerferien Sachsen 2024", "2024-06-20", "2024-08-02"),
    ("Herbstferien Sachsen 2024", "2024-10-07", "2024-10-19"),
    ("Weihnachtsferien Sachsen 2024", "2024-12-23", "2025-01-03"),
    ("Winterferien Sachsen 2025", "2025-02-17", "2025-03-01"),
    ("Osterferien Sachsen 2025", "2025-04-18", "2025-04-25"),
    ("Osterferien Sachsen 2025 (Beweglicher Ferientag)", "2025-05-30", "2025-05-30"),
    ("Sommerferien Sachsen 2025", "2025-06-28", "2025-08-08"),
    ("Herbstferien Sachsen 2025", "2025-10-06", "2025-10-18"),
    ("Weihnachtsferien Sachsen 2025", "2025-12-22", "2026-01-02"),
    ("Winterferien Sachsen 2026", "2026-02-09", "2026-02-22"),
    ("Osterferien Sachsen 2026", "2026-04-03", "2026-04-11"),
    ("Osterferien Sachsen 2026 (Beweglicher Ferientag)", "2026-05-15", "2026-05-16"),
    ("Sommerferien Sachsen 2026", "2026-07-04", "2026-08-15"),
    ("Herbstferien Sachsen 2026", "2026-10-12", "2026-10-25"),
    ("Weihnachtsferien Sachsen 2026", "2026-12-23", "2027-01-03"),
    ("Winterferien Sachsen 2027", "2027-02-08", "2027-02-19"),
    ("Osterferien Sachsen 2027", "2027-03-26", "2027-04-02"),
    ("Pfingsferien Sachsen 2027 (Beweglicher Ferientag)", "2027-05-07", "2027-05-07"),
    ("Pfingsferien Sachsen 2027", "2027-05-15", "2027-05-18"),
    ("Sommerferien Sachsen 2027", "2027-07-10", "2027-08-20"),
    ("Herbstferien Sachsen 2027", "2027-10-11", "2027-10-23"),
    ("Weihnachtsferien Sachsen 2027", "2027-12-23", "2028-01-01"),
    ("Winterferien Sachsen 2028", "2028-02-14", "2028-02-26"),
    ("Osterferien Sachsen 2028", "2028-04-14", "2028-04-22"),
    ("Osterferien Sachsen 2028 (Beweglicher Ferientag)", "2028-05-26", "2028-05-26"),
    ("Sommerferien Sachsen 2028", "2028-07-22", "2028-09-01"),
    ("Herbstferien Sachsen 2028", "2028-10-23", "2028-11-03"),
    ("Weihnachtsferien Sachsen 2028", "2028-12-23", "2029-01-03"),
)


def static_holiday_ranges() -> list[dict]:
    """Fresh list of HolidayRange dicts; ids follow the ferien-api slug scheme."""
    return [
        {
            "id": f"ferien-api:{title.lower()}-{start[:4]}-SN",
            "title": title,
            "startDate": start,
            "endDate": end,
        }
        for title, start, end in _SAXONY_SCHOOL_HOLIDAYS
    ]
