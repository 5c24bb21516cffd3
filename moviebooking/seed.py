import logging
from datetime import date

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Movie, Theater, User
from .serialization import encode_cast, encode_genres
from .showtimes import ShowtimeMaterializer

logger = logging.getLogger(__name__)

SAMPLE_THEATERS = [
    {'name': 'PVR Cinemas', 'location': 'Orion Mall, Bangalore', 'rating': 4.5,
     'seating_capacity': 250, 'amenities': 'Dolby Atmos, Recliner Seats, Food Court'},
    {'name': 'INOX Leisure', 'location': 'Phoenix Marketcity, Bangalore', 'rating': 4.3,
     'seating_capacity': 200, 'amenities': 'IMAX, Premium Lounge, Valet Parking'},
    {'name': 'Cinepolis', 'location': 'Forum Mall, Koramangala', 'rating': 4.2,
     'seating_capacity': 180, 'amenities': 'VIP Seating, 4DX Experience, Concierge'},
    {'name': 'Urvashi Cinema', 'location': 'Lalbagh Road, Bangalore', 'rating': 3.8,
     'seating_capacity': 300, 'amenities': 'Classic Theater, Budget-friendly, Snack Bar'},
]

SAMPLE_MOVIES = [
    {'title': 'Interstellar', 'duration': 169, 'rating': 8.7, 'release_date': date(2014, 11, 7),
     'language': 'English', 'genres': ['Sci-Fi', 'Drama'],
     'cast': [{'name': 'Matthew McConaughey', 'role': 'Cooper'},
              {'name': 'Anne Hathaway', 'role': 'Brand'}]},
    {'title': 'Dangal', 'duration': 161, 'rating': 8.3, 'release_date': date(2016, 12, 23),
     'language': 'Hindi', 'genres': ['Biography', 'Sport'],
     'cast': [{'name': 'Aamir Khan', 'role': 'Mahavir Singh Phogat'}]},
    {'title': 'Baahubali 2', 'duration': 167, 'rating': 8.2, 'release_date': date(2017, 4, 28),
     'language': 'Telugu', 'genres': ['Action', 'Drama'],
     'cast': [{'name': 'Prabhas', 'role': 'Baahubali'},
              {'name': 'Rana Daggubati', 'role': 'Bhallaladeva'}]},
    {'title': 'Oppenheimer', 'duration': 180, 'rating': 8.4, 'release_date': date(2023, 7, 21),
     'language': 'English', 'genres': ['Biography', 'History'],
     'cast': [{'name': 'Cillian Murphy', 'role': 'J. Robert Oppenheimer'}]},
]


def init_data():
    """Initialize sample users, theaters and movies, then generate showtimes"""
    if Theater.query.first() or Movie.query.first():
        return False

    if not User.query.filter_by(email='admin@example.com').first():
        admin = User(email='admin@example.com', first_name='Admin', last_name='User', is_admin=True)
        admin.set_password('admin')
        db.session.add(admin)
    if not User.query.filter_by(email='user@example.com').first():
        user = User(email='user@example.com', first_name='Regular', last_name='User')
        user.set_password('password123')
        db.session.add(user)

    for theater_data in SAMPLE_THEATERS:
        db.session.add(Theater(**theater_data))

    for movie_data in SAMPLE_MOVIES:
        movie = Movie(**dict(movie_data,
                             genres=encode_genres(movie_data['genres']),
                             cast=encode_cast(movie_data['cast'])))
        db.session.add(movie)

    db.session.commit()

    result = ShowtimeMaterializer.for_all(current_app.config['SHOWTIME_DAYS'])
    logger.info('Sample data initialized: %d showtimes created', result.created)
    return True


@click.command('seed')
@with_appcontext
def seed_command():
    """Create tables and load sample data"""
    db.create_all()
    if init_data():
        click.echo('Sample data initialized successfully.')
    else:
        click.echo('Database already has data; nothing to seed.')
