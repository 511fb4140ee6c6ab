"""Database configuration and initialization."""
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Declarative base shared by every model in jewelry.models
Base = declarative_base()

# Bound by init_db()
engine = None
db_session = None


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
    }
    if database_uri.startswith('sqlite'):
        # In-memory SQLite must share one connection across sessions
        engine_options['connect_args'] = {'check_same_thread': False}
        engine_options['poolclass'] = StaticPool
    else:
        engine_options.update(
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20
        )
    engine = create_engine(database_uri, **engine_options)

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    # One session per app context
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create all tables registered on Base."""
    import jewelry.models  # noqa: F401 - register mappers
    Base.metadata.create_all(bind=engine)


def drop_schema():
    """Drop all tables registered on Base."""
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
