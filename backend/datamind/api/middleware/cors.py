from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI
from datamind.config import settings

API_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

def setup_cors(app: FastAPI):
    """Setup CORS middleware for the REST API (the chat socket is not subject to CORS)"""

    origins = settings.ALLOWED_ORIGINS
    # Browsers reject credentialed responses for a wildcard origin
    allow_credentials = "*" not in origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=API_METHODS,
        allow_headers=["*"],
        max_age=3600
    )
