from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from .config import DATABASE_URL, SQL_ECHO

# Create the database engine (new database connection)
engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO)

# SQLite only enforces ON DELETE CASCADE when foreign keys are switched on per connection
if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Factory for creating new database sessions
AsyncSessionLocal = async_sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

# Provides a session for each request
async def get_db_async():
    async with AsyncSessionLocal() as session:
        yield session
