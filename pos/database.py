"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')

# Global session, factory and engine
engine = None
session_factory = None
db_session = None


def _engine_options(app) -> dict:
    """Build engine kwargs for the configured backend."""
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    timeout = app.config.get('STORE_TIMEOUT_SECONDS', 15)
    options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }

    if database_uri.startswith('sqlite'):
        options['connect_args'] = {'check_same_thread': False, 'timeout': timeout}
        if database_uri in ('sqlite://', 'sqlite:///:memory:'):
            # One shared connection so every session sees the same in-memory database
            options['poolclass'] = StaticPool
        return options

    options.update(
        pool_size=10,
        max_overflow=20,
        pool_timeout=timeout,
    )
    if database_uri.startswith('postgresql'):
        options['connect_args'] = {
            'connect_timeout': timeout,
            'options': f'-c statement_timeout={timeout * 1000}',
        }
    return options


def init_db(app):
    """Initialize database connection."""
    global engine, session_factory, db_session

    engine = create_engine(app.config['SQLALCHEMY_DATABASE_URI'], **_engine_options(app))

    session_factory = sessionmaker(autoflush=False, bind=engine)
    db_session = scoped_session(session_factory)

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table known to the models package."""
    import pos.models  # noqa: F401  (registers mappers on Base.metadata)
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop every table (tests and local resets only)."""
    import pos.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


def new_session():
    """Open an independent short-lived session (not the request-scoped one)."""
    return session_factory()
