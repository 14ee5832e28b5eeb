from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from .db import Base
from .config import SETTINGS_ROW_ID


class Book(Base):
    __tablename__ = "books"
    id = Column(String(64), primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    theme = Column(Text)
    target_age = Column(String(10))  # 3-5, 6-8, 9-12
    moral_value = Column(String(255))
    cover_image_url = Column(Text)  # hosted URL or data: URL

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    pages = relationship(
        "BookPage",
        back_populates="book",
        order_by="BookPage.page_number",
    )


class BookPage(Base):
    __tablename__ = "pages"
    id = Column(String(100), primary_key=True)  # "<book_id>-<page_number>"
    book_id = Column(String(64), ForeignKey("books.id"), index=True, nullable=False)
    page_number = Column(Integer, nullable=False)

    content = Column(Text, nullable=False, default="")
    image_prompt = Column(Text, nullable=False, default="")
    image_url = Column(Text)

    book = relationship("Book", back_populates="pages")


class AppSettings(Base):
    """Single global settings row (not per user)."""

    __tablename__ = "app_settings"
    id = Column(String(32), primary_key=True, default=SETTINGS_ROW_ID)
    brand_name = Column(String(255), default="StoryAI")
    brand_logo = Column(String(64), default="BookOpen")
    brand_logo_url = Column(Text, default="")
    image_engine = Column(String(20), default="gemini")  # gemini|freepik|placeholder
    gemini_api_key = Column(Text)
    freepik_api_key = Column(Text)
    last_validation = Column(JSON)

    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
