"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db init       # first time only (creates migrations/)
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
    flask --app wsgi seed-escalation-rules 1
    flask --app wsgi run-escalation-check --organization-id 1
"""

from partnerhub import create_app

app = create_app()
