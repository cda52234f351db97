"""
Modèles métier partagés (pydantic v2).
Les payloads du backend du club sont en français (prenom, nom, prix, dateTime, lieu...);
les alias acceptent aussi les noms anglais pour les fixtures et les clients récents.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

MONTHS: List[str] = [
    "Janvier", "Février", "Mars", "Avril", "Mai", "Juin",
    "Juillet", "Août", "Septembre", "Octobre", "Novembre", "Décembre",
]

SELECTABLE_MONTH_COUNT = 4

def selectable_months(today: date, count: int = SELECTABLE_MONTH_COUNT) -> List[str]:
    """Mois proposés au paiement: le mois courant et les trois suivants (Novembre -> ... -> Février)."""
    return [MONTHS[(today.month - 1 + i) % 12] for i in range(count)]


class BillingMode(str, Enum):
    PER_SESSION = "perSession"
    PER_MONTH = "perMonth"
    PER_QUARTER = "per3Months"

    @classmethod
    def _missing_(cls, value):
        aliases = {"persession": cls.PER_SESSION, "permonth": cls.PER_MONTH,
                   "perquarter": cls.PER_QUARTER, "per3months": cls.PER_QUARTER}
        return aliases.get(str(value).replace("_", "").replace("-", "").lower())

    @property
    def is_recurring(self) -> bool:
        return self is not BillingMode.PER_SESSION


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Adherent(_WireModel):
    id: int
    first_name: str = Field(default="", validation_alias=AliasChoices("prenom", "firstName", "first_name"))
    last_name: str = Field(default="", validation_alias=AliasChoices("nom", "lastName", "last_name"))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Activity(_WireModel):
    id: int
    name: str = Field(default="", validation_alias=AliasChoices("nom", "name"))
    unit_price: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("prix", "unitPrice", "unit_price", "price"))

    @model_validator(mode="before")
    @classmethod
    def _null_price(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for key in ("prix", "unitPrice", "unit_price", "price"):
                if key in data and data[key] is None:
                    data = {**data, key: 0}
        return data


def _nested_name(value: Any, *keys: str) -> Optional[str]:
    if isinstance(value, dict):
        for key in keys:
            if value.get(key):
                return str(value[key])
        return None
    return str(value) if value else None


class Session(_WireModel):
    id: int
    activity_id: Optional[int] = None
    activity_name: Optional[str] = None
    start: datetime
    end: Optional[datetime] = None
    location: Optional[str] = None
    price: Optional[Decimal] = None
    coach_name: Optional[str] = None
    team_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_backend_payload(cls, data: Any) -> Any:
        """
        Aplati le DTO séance du backend:
        {id, dateTime, heureFin, activite{id, nom}, lieu{nom}, prix, coach{nom}, equipe{nomEquipe}}.
        """
        if not isinstance(data, dict):
            return data
        out: Dict[str, Any] = {"id": data.get("id")}
        out["start"] = data.get("start") or data.get("startTime") or data.get("dateTime") or data.get("date")
        out["end"] = data.get("end") or data.get("endTime") or data.get("dateFin") or data.get("heureFin")
        activite = data.get("activite") if isinstance(data.get("activite"), dict) else {}
        out["activity_id"] = data.get("activity_id") or data.get("activityId") or data.get("activiteId") or activite.get("id")
        out["activity_name"] = data.get("activity_name") or activite.get("nom") or _nested_name(data.get("activite"), "nom")
        out["location"] = data.get("location") or _nested_name(data.get("lieu"), "nom")
        price = data.get("price", data.get("prix"))
        out["price"] = price
        out["coach_name"] = data.get("coach_name") or data.get("coachName") or data.get("coachNom") or _nested_name(data.get("coach"), "nom", "name")
        out["team_name"] = data.get("team_name") or data.get("teamName") or data.get("equipeNom") or _nested_name(data.get("equipe"), "nomEquipe", "nom")
        # heureFin peut n'être qu'une heure "HH:MM": on la rattache au jour de début
        end = out["end"]
        if isinstance(end, str) and len(end) <= 8 and ":" in end and isinstance(out["start"], str):
            out["end"] = f"{out['start'][:10]}T{end}"
        return {k: v for k, v in out.items() if v is not None}

    @property
    def day(self) -> date:
        return self.start.date()


class GuardianContact(_WireModel):
    first_name: str = Field(default="", validation_alias=AliasChoices("prenom", "firstName", "first_name"))
    last_name: str = Field(default="", validation_alias=AliasChoices("nom", "lastName", "last_name"))
    email: str = ""
    phone: str = Field(default="", validation_alias=AliasChoices("telephone", "phoneNumber", "phone"))

    @model_validator(mode="before")
    @classmethod
    def _none_to_empty(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: ("" if v is None else v) for k, v in data.items()}
        return data
