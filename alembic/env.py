"""Alembic environment bound to the Flask app's metadata.

The database URL comes from ``DATABASE_URL`` or the app config; relative
SQLite paths are resolved under ``instance/`` the same way Flask does.
"""
from logging.config import fileConfig
import os
import pathlib
import sys

from alembic import context
from sqlalchemy import engine_from_config, pool

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

if context.config.config_file_name:
    fileConfig(context.config.config_file_name)

from wsgi import app  # noqa: E402
from feedback_media.extensions import db  # noqa: E402
import feedback_media.models  # noqa: E402,F401

target_metadata = db.metadata

OPTIONS = {'target_metadata': target_metadata, 'compare_type': True, 'render_as_batch': True}


def database_url():
    url = os.getenv('DATABASE_URL') or app.config['SQLALCHEMY_DATABASE_URI']
    prefix = 'sqlite:///'
    if url.startswith(prefix) and not url.startswith(prefix + '/'):
        path = pathlib.Path(app.instance_path) / url[len(prefix):]
        path.parent.mkdir(parents=True, exist_ok=True)
        url = prefix + path.as_posix()
    return url


def run_offline(url):
    context.configure(url=url, literal_binds=True, **OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


def run_online(url):
    engine = engine_from_config({'sqlalchemy.url': url}, prefix='sqlalchemy.', poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


url = database_url()
if context.is_offline_mode():
    run_offline(url)
else:
    run_online(url)
