import os

# Keep the module-level engine in database.py off the working directory
os.environ.setdefault("MAFIA_DATABASE_URL", "sqlite://")
