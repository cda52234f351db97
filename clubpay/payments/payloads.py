"""
Payloads de soumission modélisés en unions discriminées (champ `kind`):
une réservation/intention "session" ne peut pas porter de mois, et inversement.
`to_wire()` produit le JSON attendu par l'API du club.
"""
from datetime import date
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from clubpay.models import BillingMode, GuardianContact


class SessionReservation(BaseModel):
    kind: Literal["session"] = "session"
    adherent_id: int
    activity_ids: List[int]
    session_id: int
    session_date: date

    def to_wire(self) -> Dict[str, Any]:
        return {
            "activiteIds": self.activity_ids,
            "payInCash": True,
            "sessionId": self.session_id,
            "sessionDate": self.session_date.isoformat(),
        }


class MonthlyReservation(BaseModel):
    kind: Literal["months"] = "months"
    adherent_id: int
    activity_ids: List[int]
    billing_mode: BillingMode
    months: List[str] = Field(min_length=1)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "activiteIds": self.activity_ids,
            "payInCash": True,
            "paymentPeriodType": self.billing_mode.value,
            "months": self.months,
            "moisPaiement": ",".join(self.months),
        }


ReservationRequest = Annotated[Union[SessionReservation, MonthlyReservation], Field(discriminator="kind")]


class _IntentBase(BaseModel):
    adherent_id: int
    activity_ids: List[int] = Field(min_length=1)
    amount: int = Field(gt=0, description="Montant en centimes")
    description: str
    contact: GuardianContact

    def _common_wire(self) -> Dict[str, Any]:
        return {
            "adherentId": self.adherent_id,
            "activiteId": self.activity_ids[0],
            "activiteIds": self.activity_ids,
            "total": self.amount,
            "description": self.description,
            "firstName": self.contact.first_name,
            "lastName": self.contact.last_name,
            "email": self.contact.email,
            "phoneNumber": self.contact.phone,
        }


class SessionPaymentIntent(_IntentBase):
    kind: Literal["session"] = "session"
    session_id: int
    session_date: date

    def to_wire(self) -> Dict[str, Any]:
        wire = self._common_wire()
        wire.update({
            "paymentPeriodType": BillingMode.PER_SESSION.value,
            "sessionId": self.session_id,
            "sessionDate": self.session_date.isoformat(),
        })
        return wire


class MonthlyPaymentIntent(_IntentBase):
    kind: Literal["months"] = "months"
    billing_mode: BillingMode
    months: List[str] = Field(min_length=1)
    next_session_id: Optional[int] = None

    def to_wire(self) -> Dict[str, Any]:
        wire = self._common_wire()
        wire.update({
            "paymentPeriodType": self.billing_mode.value,
            "months": self.months,
            "moisPaiement": ",".join(self.months),
        })
        if self.next_session_id is not None:
            wire["sessionId"] = self.next_session_id
        return wire


PaymentIntent = Annotated[Union[SessionPaymentIntent, MonthlyPaymentIntent], Field(discriminator="kind")]
