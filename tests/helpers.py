import os
import sys
import tempfile
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import pytest

# Ensure the project root is on the Python path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from income import database, models  # noqa: F401


def get_temp_session():
    db_fd, db_path = tempfile.mkstemp()
    os.close(db_fd)
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    TestingSession = sessionmaker(bind=engine)
    database.Base.metadata.create_all(engine)
    return TestingSession, Path(db_path)


@pytest.fixture
def session():
    """Provide a session on a throwaway SQLite file, removed afterwards."""
    TestingSession, path = get_temp_session()
    s = TestingSession()
    try:
        yield s
    finally:
        s.close()
        s.bind.dispose()
        path.unlink()


class FakeQuestion:
    """Stand-in for a questionary question with a canned answer."""

    def __init__(self, answer):
        self.answer = answer

    def ask(self):
        return self.answer


def make_prompt(responses):
    iterator = iter(responses)

    def _prompt(*args, **kwargs):
        return FakeQuestion(next(iterator))

    return _prompt
