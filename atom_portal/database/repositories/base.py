import logging

from sqlalchemy.orm import Session


class BaseRepository:
    def __init__(self, db: Session, logger: logging.Logger = None):
        self.db = db
        self.logger = logger or logging.getLogger(self.__class__.__module__)
