from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Date, Time, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    color = Column(String(7), nullable=False)  # "#RRGGBB"
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    # Logs outlive their category: deletion nulls the reference
    time_logs = relationship("TimeLog", back_populates="category", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"


class TimeLog(Base):
    __tablename__ = "time_logs"
    __table_args__ = (UniqueConstraint("date", "start_time", name="unique_time_slot"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    category = relationship("Category", back_populates="time_logs")

    def __repr__(self) -> str:
        return f"<TimeLog {self.date} {self.start_time} category_id={self.category_id}>"
