from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB / BIGSERIAL on Postgres, plain JSON / INTEGER rowid on SQLite
JSONType = JSON().with_variant(JSONB(), 'postgresql')
BigIntPK = BigInteger().with_variant(Integer(), 'sqlite')
