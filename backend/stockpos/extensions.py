# Overview: Flask extension instances (SQLAlchemy session + Alembic migrations) shared across the package.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
