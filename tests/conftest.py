import os
from datetime import date, timedelta

import pytest

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['SECRET_KEY'] = 'test-secret-key'

from app import app as flask_app  # noqa: E402
from models import db, Booking, Restaurant, Role, User  # noqa: E402


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(TESTING=True, UPLOAD_FOLDER=str(tmp_path / 'uploads'))
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(username='hanako', email='hanako@example.com', password='secret1', role=Role.USER):
    user = User(username=username, email=email, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def make_booking(restaurant, user, booking_date=None, booking_time='18:00', party_size=2):
    booking = Booking(
        restaurant_id=restaurant.id,
        user_id=user.id,
        user_name=user.username,
        user_email=user.email,
        party_size=party_size,
        booking_date=booking_date or tomorrow(),
        booking_time=booking_time,
    )
    db.session.add(booking)
    db.session.commit()
    return booking


def tomorrow():
    return date.today() + timedelta(days=1)


def login(client, user):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id


@pytest.fixture
def member(app):
    return make_user()


@pytest.fixture
def admin(app):
    return make_user('boss', 'boss@example.com', role=Role.ADMIN)


@pytest.fixture
def restaurant(app):
    restaurant = Restaurant(name='Sobaya Kikuya', address='1-2-3 Makishi',
                            restaurant_city='Naha', description='Okinawa soba')
    db.session.add(restaurant)
    db.session.commit()
    return restaurant
