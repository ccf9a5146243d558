"""
Employee roster as seen by the workflow engine.

Records are maintained by HR administration; the engine only reads them.
``supervisor_id`` and ``reviewer_id`` are weak references to other employees:
no foreign key is declared so that a dangling or cyclic reference can be
stored and later degraded by the hierarchy resolver instead of rejected.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from perfwork.database import Base


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, index=True, nullable=True)
    position = Column(String, nullable=True)
    department = Column(String, nullable=True, index=True)

    # Weak references (see module docstring)
    supervisor_id = Column(Integer, nullable=True, index=True)
    reviewer_id = Column(Integer, nullable=True, index=True)

    is_supervisor = Column(Boolean, default=False, nullable=False)
    is_reviewer = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Employee {self.id}: {self.full_name}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
