import pytest
from django.core.cache import cache

from clinic.models import User
from clinic.tests.factories import create_doctor, create_patient, create_user


@pytest.fixture(autouse=True)
def _fast_hashing_and_clean_cache(settings):
    settings.BCRYPT_ROUNDS = 4
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def doctor(db):
    return create_doctor()


@pytest.fixture
def staff(db):
    return create_user('desk@clinic.test', User.ROLE_STAFF, 'Front', 'Desk')


@pytest.fixture
def patient(db):
    return create_patient()


@pytest.fixture
def service(db):
    from clinic.services.booking import build_booking_service
    return build_booking_service()
