"""
asgi.py -- Production entry point: JSON API plus server-rendered pages.

api.main builds the FastAPI app (auth, dashboard and catalog endpoints,
middleware, error handlers); web.routes adds the HTML pages (/, /login,
/dashboard, /csrf-token). Neither package imports the other -- this module is
where they meet, and the test suite loads the app from here too.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
