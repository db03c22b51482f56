from sqlmodel import create_engine, Session, SQLModel
from sqlalchemy.pool import StaticPool

from gatsishub import config

_engine = None


def get_engine():
    global _engine
    if _engine is None:
        url = config.DATABASE_URL
        if url.startswith("sqlite"):
            # one shared connection so in-memory databases survive across sessions
            _engine = create_engine(
                url,
                echo=config.SQL_ECHO,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            _engine = create_engine(url, echo=config.SQL_ECHO, pool_pre_ping=True)
    return _engine


def get_session() -> Session:
    return Session(get_engine(), expire_on_commit=False)


def init_db() -> None:
    # models must be imported so their tables are registered on the metadata
    import gatsishub.models  # noqa: F401

    SQLModel.metadata.create_all(get_engine())


def reset_db() -> None:
    import gatsishub.models  # noqa: F401

    engine = get_engine()
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
