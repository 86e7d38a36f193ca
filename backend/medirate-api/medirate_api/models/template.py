"""Saved dashboard filter templates."""
from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint

from .base import Base, isoformat, utcnow


class DashboardTemplate(Base):
    """Named set of dashboard filters saved by a user for one page."""

    __tablename__ = "dashboard_templates"
    __table_args__ = (
        UniqueConstraint("user_email", "page_name", "template_name", name="uq_template_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_email = Column(String(255), nullable=False, index=True)
    page_name = Column(String(100), nullable=False, default="dashboard")
    template_name = Column(String(255), nullable=False)
    template_data = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<DashboardTemplate {self.template_name} ({self.page_name})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "template_name": self.template_name,
            "page_name": self.page_name,
            "template_data": self.template_data,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
