"""
WSGI / Flask-Migrate entry point.

Session inactivity is tracked in process memory, so serve the app from a
single worker process and scale with threads:

    gunicorn --workers 1 --threads 8 wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi create-member admin@example.org 'secret123' --role presidence --pole presidence
"""

from memberdesk import create_app

app = create_app()
