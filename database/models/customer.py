from sqlalchemy import Column, Integer, String, DateTime, Date
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.base import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True, index=True)
    email = Column(String(255), nullable=True)

    # Данные документа (вручную или из OCR)
    licence_number = Column(String(100), nullable=True)
    id_number = Column(String(100), nullable=True, index=True)
    date_of_birth = Column(Date, nullable=True)
    place_of_birth = Column(String(255), nullable=True)
    nationality = Column(String(100), nullable=True)
    issue_date = Column(Date, nullable=True)
    id_image = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    rentals = relationship("Rental", back_populates="customer")

    def __repr__(self):
        return f"<Customer(id={self.id}, name={self.full_name})>"
