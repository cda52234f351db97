"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: uvicorn, gunicorn + uvicorn workers) importe `clubpay.asgi:app`.
- Les brouillons vivent en mémoire du processus: un seul worker, ou affinité de session côté proxy.
"""

from clubpay.app import app

if __name__ == "__main__":
    # Exécution directe utile en développement local
    import os
    import uvicorn
    uvicorn.run(
        "clubpay.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
