# backend/wsgi.py
from pharmapos import create_app

app = create_app()
