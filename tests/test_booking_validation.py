from datetime import date, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from models import db, Booking, BOOKING_TIMES, STATUS_CONFIRMED
from conftest import make_booking, make_user, tomorrow


def build(restaurant, user, **overrides):
    fields = dict(
        restaurant_id=restaurant.id,
        user_id=user.id,
        user_name='Hanako',
        user_email=user.email,
        party_size=4,
        booking_date=tomorrow(),
        booking_time='10:00',
    )
    fields.update(overrides)
    return Booking(**fields)


def test_slots_are_twelve_hours_from_ten():
    assert len(BOOKING_TIMES) == 12
    assert BOOKING_TIMES[0] == '10:00'
    assert BOOKING_TIMES[-1] == '21:00'


def test_valid_booking_has_no_errors(restaurant, member):
    booking = build(restaurant, member)
    assert booking.validate() == {}

    db.session.add(booking)
    db.session.commit()
    assert booking.status == STATUS_CONFIRMED


def test_today_is_bookable(restaurant, member):
    assert build(restaurant, member, booking_date=date.today()).validate() == {}


def test_past_date_rejected(restaurant, member):
    errors = build(restaurant, member, booking_date=date(2020, 1, 1)).validate()
    assert errors['booking_date'] == [Booking.PAST_DATE]
    assert Booking.PAST_DATE == 'past dates cannot be selected'


def test_past_date_checked_against_given_today(restaurant, member):
    booking = build(restaurant, member, booking_date=date(2030, 5, 1))
    assert 'booking_date' in booking.validate(today=date(2030, 5, 2))
    assert booking.validate(today=date(2030, 5, 1)) == {}


@pytest.mark.parametrize('party_size', [0, 21, -3, None])
def test_party_size_out_of_range_rejected(restaurant, member, party_size):
    errors = build(restaurant, member, party_size=party_size).validate()
    assert 'party_size' in errors


@pytest.mark.parametrize('party_size', [1, 20])
def test_party_size_bounds_accepted(restaurant, member, party_size):
    assert build(restaurant, member, party_size=party_size).validate() == {}


@pytest.mark.parametrize('user_name', ['', '   ', None])
def test_blank_name_rejected(restaurant, member, user_name):
    assert 'user_name' in build(restaurant, member, user_name=user_name).validate()


def test_missing_date_and_time_reported(restaurant, member):
    errors = build(restaurant, member, booking_date=None, booking_time=None).validate()
    assert errors['booking_date'] == ['date is required']
    assert errors['booking_time'] == ['time is required']


@pytest.mark.parametrize('booking_time', ['09:00', '22:00', '12:30', 'noon'])
def test_time_outside_slots_rejected(restaurant, member, booking_time):
    assert 'booking_time' in build(restaurant, member, booking_time=booking_time).validate()


def test_occupied_slot_rejected(restaurant, member):
    make_booking(restaurant, member, booking_date=tomorrow(), booking_time='19:00')
    other = make_user('taro', 'taro@example.com')

    errors = build(restaurant, other, booking_time='19:00').validate()
    assert errors['booking_time'] == [Booking.SLOT_TAKEN]


def test_other_slots_stay_free(restaurant, member):
    make_booking(restaurant, member, booking_date=tomorrow(), booking_time='19:00')

    assert build(restaurant, member, booking_time='20:00').validate() == {}
    later = tomorrow() + timedelta(days=1)
    assert build(restaurant, member, booking_date=later, booking_time='19:00').validate() == {}


def test_existing_booking_does_not_conflict_with_itself(restaurant, member):
    booking = make_booking(restaurant, member)
    booking.party_size = 6
    assert booking.validate() == {}


def test_database_rejects_double_booked_slot(restaurant, member):
    make_booking(restaurant, member, booking_time='12:00')
    other = make_user('taro', 'taro@example.com')

    with pytest.raises(IntegrityError):
        make_booking(restaurant, other, booking_time='12:00')
    db.session.rollback()
    assert Booking.query.count() == 1
