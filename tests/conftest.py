import os
import sys
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to sys.path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from taskflow import mailer
from taskflow.database import Base
from taskflow.models import User

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingDispatcher(mailer.EmailDispatcher):
    """Keeps outbound emails in memory instead of sending them."""

    def __init__(self):
        self.sent = []

    def dispatch(self, email):
        self.sent.append(email)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def sent_emails():
    dispatcher = RecordingDispatcher()
    mailer.set_dispatcher(dispatcher)
    yield dispatcher.sent
    mailer.set_dispatcher(None)


@pytest.fixture
def user(db_session):
    user = User(email="owner@example.com", name="Owner", email_verified=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user
