"""
extensions.py - Flask Extensions
Initialize Flask extensions here to avoid circular imports.
Extensions are created here but initialized in app.py with init_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

# Database ORM (Object-Relational Mapping)
# Report cards, items, exams and mappings are all stored through this
db = SQLAlchemy()

# Database Migration Tool
# Usage: flask db init, flask db migrate, flask db upgrade
migrate = Migrate()

# User Session Management
# Identifies the acting user (teacher overriding a score, admin finalizing a card)
login_manager = LoginManager()
