# Overview: Flask extension instances for database, migrations and tab signals.

from blinker import Namespace
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# Same mechanism Flask uses for its own request signals
tab_signals = Namespace()
