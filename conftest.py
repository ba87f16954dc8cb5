import fakeredis
import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from accounts.models import Profile, Role
from review.models import Exercise
from review.notifications import reset_hub

PASSWORD = "correct-horse-battery"


def make_user(email, *, full_name="", role=Role.VALIDATOR, approved=True):
    user = get_user_model().objects.create_user(username=email, email=email, password=PASSWORD)
    Profile.objects.create(user=user, full_name=full_name, role=role, is_approved=approved)
    return user


def client_for(user):
    c = APIClient()
    c.force_login(user)
    return c


def content(**overrides):
    data = {"question": "2+2", "answer": "4", "level": "CE2", "topic": "Addition"}
    data.update(overrides)
    return data


@pytest.fixture(autouse=True)
def hub():
    return reset_hub()


@pytest.fixture
def redis_server():
    """One in-memory Redis shared by every client made from it, like workers sharing a broker."""
    return fakeredis.FakeServer()


def redis_client(server):
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture
def alice(db):
    return make_user("alice@example.com", full_name="Alice Martin")


@pytest.fixture
def bob(db):
    return make_user("bob@example.com", full_name="Bob Durand")


@pytest.fixture
def admin_account(db):
    return make_user("admin@example.com", full_name="Admin", role=Role.ADMIN)


@pytest.fixture
def pending_user(db):
    return make_user("new@example.com", full_name="Newcomer", approved=False)


@pytest.fixture
def exercise42(db):
    return Exercise.objects.create(id=42, content=content())


@pytest.fixture
def alice_client(alice):
    return client_for(alice)


@pytest.fixture
def bob_client(bob):
    return client_for(bob)


@pytest.fixture
def admin_api(admin_account):
    return client_for(admin_account)
