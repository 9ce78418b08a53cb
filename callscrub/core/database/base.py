# File: callscrub/core/database/base.py

from sqlalchemy.orm import declarative_base

# The shared registry. Recording, artifact and transcript models inherit from this.
Base = declarative_base()
