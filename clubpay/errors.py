"""
Exceptions métier partagées par les features (API du club, passerelle, validation).
"""
from typing import Optional


class ClubApiError(Exception):
    """Réponse non 2xx (ou transport en échec) de l'API du club. `message` est le motif serveur tel quel."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AlreadyPaidError(ClubApiError):
    """Le backend signale que le mois ou la séance est déjà réglé."""


class GatewayResponseError(Exception):
    """Réponse de la passerelle sans `payment_url` http(s) absolue."""


class ValidationError(Exception):
    def __init__(self, message: str, code: str = "invalid"):
        super().__init__(message)
        self.message = message
        self.code = code
