# Overview: WSGI entrypoint; FLASK_APP target for the flask CLI.

from supplier_credits import create_app

app = create_app()
