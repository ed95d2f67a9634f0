from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from kujifair.db.metadata import metadata_obj

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = metadata_obj
