import pytest

from data_preprocess.repository import InMemoryRepository
from tests.helpers import make_job, make_user


@pytest.fixture
def user():
    return make_user()


@pytest.fixture
def job():
    return make_job()


@pytest.fixture
def repository():
    users = [make_user("u1"), make_user("u2", skills=(("java", 4),)), make_user("u_empty", skills=())]
    jobs = [make_job(f"j{i}") for i in range(1, 6)]
    return InMemoryRepository(users, jobs)
