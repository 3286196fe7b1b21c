# bikeshop_api/services/numbering.py

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..models import db
from .errors import ConflictError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


def insert_with_unique_number(document, number_attr, generate, now=None):
    """
    Insert a new document, retrying when its generated number is taken.

    The unique constraint on ``number_attr`` is what guarantees uniqueness;
    the generated suffix only makes a collision unlikely. Each attempt after
    the first draws a random suffix. Integrity errors that are not number
    collisions are reported as conflicts straight away.
    """
    max_attempts = current_app.config.get('DOCUMENT_NUMBER_MAX_ATTEMPTS', DEFAULT_MAX_ATTEMPTS)
    model = type(document)
    number_column = getattr(model, number_attr)

    for attempt in range(max_attempts):
        number = generate(now=now, attempt=attempt)
        setattr(document, number_attr, number)
        db.session.add(document)
        try:
            db.session.commit()
            return document
        except IntegrityError as e:
            db.session.rollback()
            taken = db.session.query(model.id).filter(number_column == number).first() is not None
            if not taken:
                logger.error(f"Integrity error inserting {model.__name__}: {e}")
                raise ConflictError(f'Could not save {model.__name__.lower()}', cause=e)
            logger.warning(f"{model.__name__} number {number} already taken (attempt {attempt + 1}/{max_attempts})")

    raise ConflictError(
        f'Could not allocate a unique {model.__name__.lower()} number after {max_attempts} attempts'
    )
