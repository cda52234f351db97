import re

from email_validator import EmailNotValidError, validate_email

from clubpay.config import DEFAULT_PHONE_COUNTRY_CODE
from clubpay.errors import ValidationError
from clubpay.models import GuardianContact

MIN_PHONE_DIGITS = 8

def normalize_phone(phone: str, country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> str:
    """
    Normalise un numéro au format international "+<indicatif><numéro>".
    - "00" initial équivaut à "+"
    - un numéro national reçoit l'indicatif par défaut (le 0 de tête est retiré)
    - un indicatif déjà saisi sans "+" n'est pas répété ("216 20 123 456")
    """
    raw = (phone or "").strip()
    digits = re.sub(r"\D", "", raw)
    if raw.startswith("+"):
        return f"+{digits}"
    if digits.startswith("00"):
        return f"+{digits[2:]}"
    national = digits.lstrip("0")
    if national.startswith(country_code) and len(national) - len(country_code) >= MIN_PHONE_DIGITS:
        national = national[len(country_code):]
    return f"+{country_code}{national}"

def validate_guardian_contact(contact: GuardianContact) -> GuardianContact:
    """
    Valide les coordonnées du parent (identique pour les deux chemins de paiement).
    Retourne une copie normalisée (espaces retirés, téléphone international).
    """
    first_name = (contact.first_name or "").strip()
    last_name = (contact.last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("Le nom et prénom du parent sont requis.", code="invalid_contact")

    try:
        email = validate_email((contact.email or "").strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        raise ValidationError("Veuillez fournir une adresse email valide.", code="invalid_contact")

    if len(re.sub(r"\D", "", contact.phone or "")) < MIN_PHONE_DIGITS:
        raise ValidationError("Veuillez fournir un numéro de téléphone valide.", code="invalid_contact")

    return GuardianContact(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=normalize_phone(contact.phone),
    )
