from datetime import datetime

from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db
from .serialization import decode_cast, decode_genres, decode_seats

BOOKING_CONFIRMED = 'CONFIRMED'
BOOKING_PENDING = 'PENDING'
BOOKING_CANCELLED = 'CANCELLED'
BOOKING_STATUSES = (BOOKING_CONFIRMED, BOOKING_PENDING, BOOKING_CANCELLED)

# Bookings in these states hold their seats
ACTIVE_BOOKING_STATUSES = (BOOKING_CONFIRMED, BOOKING_PENDING)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    """User model"""
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(80))
    last_name = db.Column(db.String(80))
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    bookings = db.relationship('Booking', backref='user', lazy=True)

    def set_password(self, pwd):
        """Set user password with hashing"""
        self.password = generate_password_hash(pwd)

    def check_password(self, pwd):
        """Check if password matches"""
        return check_password_hash(self.password, pwd)

    @property
    def display_name(self):
        if self.first_name:
            return f'{self.first_name} {self.last_name or ""}'.strip()
        return self.email

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'name': self.display_name,
            'is_admin': self.is_admin,
            'created_at': _iso(self.created_at),
        }


class Movie(db.Model):
    """Movie model"""
    __tablename__ = 'movie'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    poster = db.Column(db.String(500))
    duration = db.Column(db.Integer)
    rating = db.Column(db.Float)
    release_date = db.Column(db.Date)
    language = db.Column(db.String(50))
    genres = db.Column(db.Text, default='[]', nullable=False)
    cast = db.Column(db.Text, default='[]', nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    showtimes = db.relationship('Showtime', backref='movie', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'poster': self.poster,
            'duration': self.duration,
            'rating': self.rating,
            'release_date': _iso(self.release_date),
            'language': self.language,
            'genres': decode_genres(self.genres),
            'cast': decode_cast(self.cast),
        }


class Theater(db.Model):
    """Theater model"""
    __tablename__ = 'theater'
    __table_args__ = (
        db.CheckConstraint('seating_capacity > 0', name='ck_theater_capacity_positive'),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(200), nullable=False)
    seating_capacity = db.Column(db.Integer, nullable=False)
    rating = db.Column(db.Float)
    amenities = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    showtimes = db.relationship('Showtime', backref='theater', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'location': self.location,
            'seating_capacity': self.seating_capacity,
            'rating': self.rating,
            'amenities': self.amenities,
        }


class Showtime(db.Model):
    """Showtime model; ``time`` is the display string, e.g. '7:00 PM'"""
    __tablename__ = 'showtime'
    __table_args__ = (
        db.CheckConstraint('available_seats >= 0', name='ck_showtime_seats_non_negative'),
        db.Index('ix_showtime_movie_theater', 'movie_id', 'theater_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    movie_id = db.Column(db.Integer, db.ForeignKey('movie.id'), nullable=False)
    theater_id = db.Column(db.Integer, db.ForeignKey('theater.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    time = db.Column(db.String(20), nullable=False)
    format = db.Column(db.String(20), default='standard', nullable=False)
    price = db.Column(db.Float, nullable=False)
    available_seats = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    bookings = db.relationship('Booking', backref='showtime', lazy=True)

    def to_dict(self, include_related=False):
        data = {
            'id': self.id,
            'movieId': self.movie_id,
            'theaterId': self.theater_id,
            'date': _iso(self.date),
            'time': self.time,
            'format': self.format,
            'price': self.price,
            'available_seats': self.available_seats,
        }
        if include_related:
            data['movie'] = self.movie.to_dict() if self.movie else None
            data['theater'] = self.theater.to_dict() if self.theater else None
        return data


class Booking(db.Model):
    """Booking model"""
    __tablename__ = 'booking'

    id = db.Column(db.Integer, primary_key=True)
    booking_reference = db.Column(db.String(20), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    showtime_id = db.Column(db.Integer, db.ForeignKey('showtime.id'), nullable=False)
    seats = db.Column(db.Text, nullable=False)
    total_price = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(30), default='card', nullable=False)
    status = db.Column(db.String(20), default=BOOKING_CONFIRMED, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def seat_labels(self):
        return decode_seats(self.seats)

    def to_dict(self, include_showtime=True):
        data = {
            'id': self.id,
            'booking_reference': self.booking_reference,
            'userId': self.user_id,
            'showtimeId': self.showtime_id,
            'seats': self.seat_labels,
            'total_price': self.total_price,
            'payment_method': self.payment_method,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }
        if include_showtime and self.showtime:
            data['showtime'] = self.showtime.to_dict(include_related=True)
        return data
