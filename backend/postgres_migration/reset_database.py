"""
Script to reset the database by dropping all tables and recreating them.
WARNING: This will delete all data!

Run with:
  cd backend && python -m postgres_migration.reset_database
"""
from sqlalchemy import inspect, text

from pocketledger.database import engine, Base
import pocketledger.models  # noqa: F401  (registers tables on Base.metadata)


def reset_database():
    """Drop all tables and recreate them with the current schema."""
    print("⚠️  WARNING: This will delete all existing data!")

    engine.dispose()

    with engine.connect() as conn:
        print("Terminating active database connections...")
        try:
            conn.execute(text("""
                SELECT pg_terminate_backend(pg_stat_activity.pid)
                FROM pg_stat_activity
                WHERE pg_stat_activity.datname = current_database()
                AND pid <> pg_backend_pid();
            """))
            conn.commit()
            print("✓ Active connections terminated")
        except Exception as e:
            print(f"⚠ Could not terminate connections: {e}")
            conn.rollback()

    print("\nDropping ledger tables...")
    Base.metadata.drop_all(bind=engine)
    print("✓ Tables dropped")

    print("\nCreating tables...")
    Base.metadata.create_all(bind=engine)
    print("✓ All tables created successfully!")

    print("\nCreated tables:")
    inspector = inspect(engine)
    for table_name in sorted(inspector.get_table_names()):
        print(f"  - {table_name}")

    print("\n✅ Database reset complete!")


if __name__ == "__main__":
    reset_database()
