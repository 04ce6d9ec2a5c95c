# File: config/init_db.py

from salesdesk.config import Settings
from salesdesk.db.session import Database

if __name__ == "__main__":
    settings = Settings.from_env()
    print(f"⏳ Creating database tables in '{settings.database_url}'...")
    database = Database(settings.database_url)
    database.create_all()
    database.dispose()
    print("✅ Tables created.")
