from datetime import date

import pytest

from moviebooking import create_app
from moviebooking.config import TestingConfig
from moviebooking.extensions import db
from moviebooking.models import Movie, Theater, User
from moviebooking.serialization import encode_cast, encode_genres

START = date(2030, 1, 1)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email='user@example.com', password='password123', is_admin=False):
    user = User(email=email, first_name='Test', last_name='User', is_admin=is_admin)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def make_movie(title='Interstellar', **kwargs):
    movie = Movie(
        title=title,
        duration=kwargs.pop('duration', 169),
        language=kwargs.pop('language', 'English'),
        genres=encode_genres(kwargs.pop('genres', ['Sci-Fi'])),
        cast=encode_cast(kwargs.pop('cast', [{'name': 'Matthew McConaughey', 'role': 'Cooper'}])),
        **kwargs
    )
    db.session.add(movie)
    db.session.commit()
    return movie


def make_theater(name='PVR Cinemas', seating_capacity=120, **kwargs):
    theater = Theater(
        name=name,
        location=kwargs.pop('location', 'Orion Mall, Bangalore'),
        seating_capacity=seating_capacity,
        **kwargs
    )
    db.session.add(theater)
    db.session.commit()
    return theater


@pytest.fixture
def user(app):
    return make_user()


@pytest.fixture
def admin_user(app):
    return make_user(email='admin@example.com', password='admin-pass', is_admin=True)


@pytest.fixture
def movie(app):
    return make_movie()


@pytest.fixture
def theater(app):
    return make_theater()


@pytest.fixture
def logged_in_client(client, user):
    response = client.post('/api/auth/login', json={'email': user.email, 'password': 'password123'})
    assert response.status_code == 200
    return client


@pytest.fixture
def admin_headers(client, admin_user):
    response = client.post('/api/admin/login', json={'email': admin_user.email, 'password': 'admin-pass'})
    assert response.status_code == 200
    return {'Authorization': f'Bearer {response.get_json()["token"]}'}
