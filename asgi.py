"""
ASGI entry point for uvicorn.

    uvicorn asgi:app --host 0.0.0.0 --port 8000

``python asgi.py`` does the same, honouring $PORT.
"""

import os

from app import create_app

app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("asgi:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
