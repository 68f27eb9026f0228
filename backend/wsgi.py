# Overview: WSGI entry point (FLASK_APP=wsgi.py).

from invoicing import create_app

app = create_app()
