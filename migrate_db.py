from config import load_settings
from database import init_db, make_engine

def migrate_db():
    settings = load_settings()
    print(f"Migrating database at {settings.database_url}...")
    # Creates any missing tables (documents, plaid_items)
    init_db(make_engine(settings.database_url))
    print("Migration complete!")

if __name__ == "__main__":
    migrate_db()
