from sqlalchemy import Column, String, Text, ForeignKey
from sqlalchemy.orm import relationship
from app.core.database import Base


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    username = Column(String, unique=True, index=True)
    full_json_blob = Column(Text)  # Whole user record as JSON

    itineraries = relationship("ItineraryRow", back_populates="owner")


class ItineraryRow(Base):
    __tablename__ = "itineraries"

    # (user_id, id) mirrors the nested userId -> itineraryId layout of the JSON store
    user_id = Column(String, ForeignKey("users.id"), primary_key=True)
    id = Column(String, primary_key=True, index=True)
    timestamp = Column(String)
    full_json_blob = Column(Text)

    owner = relationship("UserRow", back_populates="itineraries")
