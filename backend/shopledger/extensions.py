# Overview: Flask extension instances for database, migrations and the persistence gateway.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .database import Database

db = SQLAlchemy()
migrate = Migrate()
database = Database(db)
