from flask_caching import Cache
from flask_cors import CORS
from flask_session import Session
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
cache = Cache()
server_session = Session()
cors = CORS()
