# backend/wsgi.py
from parkcore import create_app

app = create_app()
