"""
Shared fixtures: an in-memory SQLite database per test.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.database import init_db, make_engine
from services.ruleset_loader import clear_intent_cache


@pytest.fixture
def db_engine():
    # StaticPool: every session shares the one in-memory connection
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture(autouse=True)
def fresh_intent_cache():
    clear_intent_cache()
    yield
    clear_intent_cache()
