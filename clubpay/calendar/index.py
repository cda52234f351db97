"""
Index calendaire pur: jour (date sans heure) -> séances de ce jour, dans l'ordre du backend.
"""
from datetime import date
from typing import Dict, Iterable, List

from clubpay.models import Session

def build_index(sessions: Iterable[Session]) -> Dict[date, List[Session]]:
    index: Dict[date, List[Session]] = {}
    for session in sessions:
        index.setdefault(session.day, []).append(session)
    return dict(sorted(index.items()))

def resolve(index: Dict[date, List[Session]], day: date) -> List[Session]:
    return list(index.get(day, []))

def session_dates(index: Dict[date, List[Session]]) -> List[date]:
    return list(index.keys())
