"""
WSGI entry point for Hall Pass Hub.

Error handlers, blueprints, CLI commands and the nightly reset are all set up
by the application factory in hallpass/__init__.py.

For gunicorn: wsgi:app
"""

# -------------------- APPLICATION FACTORY --------------------
from hallpass import app
from hallpass.extensions import db, migrate  # noqa: F401

# -------------------- CONVENIENCE IMPORTS --------------------
# `flask shell` and one-off scripts reach the models through this module
from hallpass.models import School, Grade, Teacher, Student, Pass  # noqa: F401


if __name__ == "__main__":
    app.run()
