from fastapi import Request, HTTPException, Depends
from typing import Optional
import hashlib

def get_bearer_token(request: Request) -> str:
    """
    Jeton porteur du parent connecté (émis par l'API du club, transmis tel quel).
    Absent ou vide -> 401.
    """
    auth_header = request.headers.get("Authorization", "")
    token: Optional[str] = None
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")
    return token

def require_token(token: str = Depends(get_bearer_token)) -> str:
    return token

def token_fingerprint(token: str) -> str:
    """Empreinte courte du jeton (propriété des brouillons, clés de rate limit), jamais le jeton lui-même."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
