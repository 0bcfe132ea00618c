# Vercel serves this module; CORS comes from BACKEND_CORS_ORIGINS and
# BACKEND_CORS_ORIGIN_REGEX in backend.fridgeshare.main
from backend.fridgeshare.main import app as fastapi_app

app = fastapi_app
