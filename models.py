import enum
import re
from datetime import date

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import delete, inspect, text
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

# Hourly slots, 10:00 through 21:00
BOOKING_TIMES = ['%02d:00' % hour for hour in range(10, 22)]
MIN_PARTY_SIZE = 1
MAX_PARTY_SIZE = 20
STATUS_CONFIRMED = 'confirmed'


class Role(enum.Enum):
    USER = 'user'
    ADMIN = 'admin'

    @property
    def label(self):
        return ROLE_LABELS[self]


ROLE_LABELS = {
    Role.USER: 'Member',
    Role.ADMIN: 'Administrator',
}


class FavoriteAction(enum.Enum):
    ADDED = 'added'
    REMOVED = 'removed'


class Restaurant(db.Model):
    __tablename__ = 'restaurants'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    address = db.Column(db.String(255))
    image_filename = db.Column(db.String(255))
    restaurant_city = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(db.DateTime, default=db.func.current_timestamp(),
                           onupdate=db.func.current_timestamp())

    bookings = db.relationship('Booking', backref='restaurant', cascade='all')
    favorites = db.relationship('Favorite', backref='restaurant', cascade='all')

    @property
    def image_path(self):
        if not self.image_filename:
            return None
        return '/uploads/' + self.image_filename


class User(db.Model):
    __tablename__ = 'users'

    USERNAME_PATTERN = re.compile(r'[A-Za-z0-9_]{3,}')
    EMAIL_PATTERN = re.compile(r'[\w+\-.]+@[a-z\d\-]+(\.[a-z\d\-]+)*\.[a-z]+', re.IGNORECASE)
    MIN_PASSWORD_LENGTH = 6

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(
        db.Enum(Role, native_enum=False, length=20,
                values_callable=lambda roles: [r.value for r in roles]),
        nullable=False, default=Role.USER, server_default=Role.USER.value)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(db.DateTime, default=db.func.current_timestamp(),
                           onupdate=db.func.current_timestamp())

    bookings = db.relationship('Booking', backref='user', cascade='all')
    favorites = db.relationship('Favorite', backref='user', cascade='all')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role is Role.ADMIN

    @classmethod
    def valid_username(cls, username):
        return bool(username) and cls.USERNAME_PATTERN.fullmatch(username) is not None

    @classmethod
    def valid_email(cls, email):
        return bool(email) and cls.EMAIL_PATTERN.fullmatch(email) is not None

    @classmethod
    def valid_password(cls, password):
        return bool(password) and len(password) >= cls.MIN_PASSWORD_LENGTH

    @classmethod
    def email_taken(cls, email):
        return db.session.query(
            cls.query.filter(db.func.lower(cls.email) == email.lower()).exists()
        ).scalar()

    @classmethod
    def find_by_login(cls, username_or_email):
        """Look a user up by exact username first, then by email (case-insensitive)."""
        return (cls.query.filter_by(username=username_or_email).first()
                or cls.query.filter_by(email=username_or_email.lower()).first())


class Booking(db.Model):
    __tablename__ = 'bookings'
    __table_args__ = (
        db.UniqueConstraint('restaurant_id', 'booking_date', 'booking_time',
                            name='uq_bookings_slot'),
    )

    SLOT_TAKEN = 'this time slot is already booked'
    PAST_DATE = 'past dates cannot be selected'
    INVALID_DATE = 'please enter a valid date'

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurants.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    user_name = db.Column(db.String(100), nullable=False)
    user_email = db.Column(db.String(120), nullable=False)
    user_phone = db.Column(db.String(30))
    party_size = db.Column(db.Integer, nullable=False)
    booking_date = db.Column(db.Date, nullable=False)
    booking_time = db.Column(db.String(5), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_CONFIRMED)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(db.DateTime, default=db.func.current_timestamp(),
                           onupdate=db.func.current_timestamp())

    def validate(self, today=None):
        """Return a mapping of field name to error messages; empty when the booking is valid."""
        today = today or date.today()
        errors = {}

        def add(field, message):
            errors.setdefault(field, []).append(message)

        if not self.user_name or not self.user_name.strip():
            add('user_name', 'name is required')
        if self.party_size is None or not MIN_PARTY_SIZE <= self.party_size <= MAX_PARTY_SIZE:
            add('party_size', 'party size must be between %d and %d' % (MIN_PARTY_SIZE, MAX_PARTY_SIZE))
        if not self.booking_date:
            add('booking_date', 'date is required')
        if not self.booking_time:
            add('booking_time', 'time is required')
        elif self.booking_time not in BOOKING_TIMES:
            add('booking_time', 'please choose one of the available times')

        if self.booking_date and self.booking_date < today:
            add('booking_date', self.PAST_DATE)

        if self.restaurant_id and self.booking_date and self.booking_time and self.slot_taken():
            add('booking_time', self.SLOT_TAKEN)
        return errors

    def slot_taken(self):
        with db.session.no_autoflush:
            query = Booking.query.filter_by(restaurant_id=self.restaurant_id,
                                            booking_date=self.booking_date,
                                            booking_time=self.booking_time)
            if self.id is not None:
                query = query.filter(Booking.id != self.id)
            return db.session.query(query.exists()).scalar()

    @property
    def formatted_date(self):
        return self.booking_date.strftime('%B %d, %Y') if self.booking_date else ''


class Favorite(db.Model):
    __tablename__ = 'favorites'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'restaurant_id', name='uq_favorites_user_restaurant'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurants.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    @classmethod
    def exists_for(cls, user_id, restaurant_id):
        return db.session.query(
            cls.query.filter_by(user_id=user_id, restaurant_id=restaurant_id).exists()
        ).scalar()

    @classmethod
    def toggle(cls, user_id, restaurant_id):
        """Flip membership of (user, restaurant) inside one transaction.

        The delete is a single statement, so only one of two racing requests can
        remove the row. When nothing was deleted we insert; a racing insert of the
        same pair hits the unique constraint and the membership is already present.
        """
        result = db.session.execute(
            delete(cls).where(cls.user_id == user_id, cls.restaurant_id == restaurant_id))
        if result.rowcount:
            db.session.commit()
            return FavoriteAction.REMOVED

        db.session.add(cls(user_id=user_id, restaurant_id=restaurant_id))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
        return FavoriteAction.ADDED

    @classmethod
    def restaurants_for(cls, user_id):
        return (Restaurant.query
                .join(cls, cls.restaurant_id == Restaurant.id)
                .filter(cls.user_id == user_id)
                .order_by(cls.created_at.desc(), cls.id.desc())
                .all())


def init_db():
    """Create missing tables and add the users.role column to older databases."""
    db.create_all()
    columns = [column['name'] for column in inspect(db.engine).get_columns('users')]
    if 'role' not in columns:
        with db.engine.begin() as conn:
            conn.execute(text(
                "ALTER TABLE users ADD COLUMN role VARCHAR(20) NOT NULL DEFAULT 'user'"))
