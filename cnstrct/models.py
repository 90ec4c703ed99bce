from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    supabase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(50), nullable=True)  # gc_admin, project_manager, homeowner, platform_admin
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    projects = relationship("Project", back_populates="user", cascade="all, delete-orphan")


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    client_name = Column(String(255), nullable=True)
    client_email = Column(String(255), nullable=True)
    status = Column(String(50), default="active")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="projects")
    expenses = relationship("Expense", back_populates="project", cascade="all, delete-orphan")
    invoices = relationship("Invoice", back_populates="project", cascade="all, delete-orphan")


class Expense(Base):
    """Money owed to a payee (subcontractor, supplier) on a project"""

    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    payee = Column(String(255), nullable=False)
    expense_type = Column(String(50), nullable=True)  # labor, materials, equipment, other
    expense_number = Column(String(50), nullable=True, index=True)
    expense_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    amount = Column(Float, nullable=False)
    # Derived from payments on every mutation
    amount_due = Column(Float, nullable=False)
    payment_status = Column(String(50), default="due")  # due, partially_paid, paid

    # GL account the bill line is booked against in QBO
    qbo_account_id = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="expenses")
    payments = relationship("Payment", back_populates="expense", cascade="all, delete-orphan")


class Invoice(Base):
    """Invoice billed to the project's client"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    invoice_number = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    amount = Column(Float, nullable=False)
    amount_due = Column(Float, nullable=False)
    payment_status = Column(String(50), default="due")  # due, partially_paid, paid

    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="invoices")
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan")


class Payment(Base):
    """A payment against either an expense (outgoing) or an invoice (incoming)"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)

    amount = Column(Float, nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_method_code = Column(String(50), nullable=True)  # cc, check, transfer, cash
    payment_reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    direction = Column(String(20), nullable=False)  # outgoing, incoming
    status = Column(String(20), default="completed")

    created_at = Column(DateTime, server_default=func.now())

    expense = relationship("Expense", back_populates="payments")
    invoice = relationship("Invoice", back_populates="payments")
