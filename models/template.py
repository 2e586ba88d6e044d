"""
Questionnaire schema and answer store models
Template -> Page -> Section -> Question (+ QuestionDependency); booking Sections hold QaPairs
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from core.database import Base


# Section.model_type values
SECTION_MODEL_PAGE = "page"
SECTION_MODEL_BOOKING = "booking"


class Template(Base):
    """Named questionnaire version; schema changes append, never rewrite"""
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    uuid = Column(String(36), nullable=True, unique=True)
    archived = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pages = relationship("Page", back_populates="template", order_by="Page.order", cascade="all, delete-orphan")

    def to_dict(self, include_pages: bool = True):
        data = {
            "id": self.id,
            "name": self.name,
            "uuid": self.uuid,
            "archived": bool(self.archived),
        }
        if include_pages:
            data["pages"] = [p.to_dict() for p in self.pages]
        return data


class Page(Base):
    __tablename__ = "pages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_id = Column(Integer, ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    order = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    template = relationship("Template", back_populates="pages")
    sections = relationship(
        "Section",
        primaryjoin=f"and_(Page.id == foreign(Section.model_id), Section.model_type == '{SECTION_MODEL_PAGE}')",
        order_by="Section.order",
        viewonly=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "title": self.title,
            "order": self.order,
            "sections": [s.to_dict() for s in self.sections],
        }


class Section(Base):
    """
    Labeled group of Questions.
    model_type 'page' -> schema section owned by a Page (model_id = page id)
    model_type 'booking' -> instance section owned by a Booking (model_id = booking id),
    with orig_section_id pointing back at the schema section it was cloned from.
    """
    __tablename__ = "sections"
    __table_args__ = (
        UniqueConstraint("model_type", "model_id", "orig_section_id", name="uq_sections_model_orig"),
        Index("ix_sections_model", "model_type", "model_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    model_type = Column(String(20), nullable=False, default=SECTION_MODEL_PAGE)
    model_id = Column(Integer, nullable=False)
    orig_section_id = Column(Integer, nullable=True)  # weak reference, not an ownership edge
    label = Column(String(255), nullable=True)
    type = Column(String(50), nullable=True)
    order = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    questions = relationship("Question", back_populates="section", order_by="Question.order", cascade="all, delete-orphan")
    qa_pairs = relationship("QaPair", back_populates="section", order_by="QaPair.id", cascade="all, delete-orphan")

    def to_dict(self, include_questions: bool = True):
        data = {
            "id": self.id,
            "model_type": self.model_type,
            "model_id": self.model_id,
            "orig_section_id": self.orig_section_id,
            "label": self.label,
            "type": self.type,
            "order": self.order,
        }
        if self.model_type == SECTION_MODEL_BOOKING:
            data["qa_pairs"] = [qa.to_dict() for qa in self.qa_pairs]
        elif include_questions:
            data["questions"] = [q.to_dict() for q in self.questions]
        return data


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    section_id = Column(Integer, ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True)
    question = Column(Text, nullable=True)  # display text, mutable presentation copy
    label = Column(String(255), nullable=True)
    question_key = Column(String(255), nullable=True, index=True)
    type = Column(String(50), nullable=False, default="text")
    required = Column(Boolean, default=False)
    options = Column(JSON, default=list)
    second_booking_only = Column(Boolean, default=False)
    ndis_only = Column(Boolean, default=False)
    order = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    section = relationship("Section", back_populates="questions")
    dependencies = relationship(
        "QuestionDependency",
        foreign_keys="QuestionDependency.question_id",
        back_populates="question",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "section_id": self.section_id,
            "question": self.question,
            "label": self.label,
            "question_key": self.question_key,
            "type": self.type,
            "required": bool(self.required),
            "options": self.options or [],
            "second_booking_only": bool(self.second_booking_only),
            "ndis_only": bool(self.ndis_only),
            "order": self.order,
            "dependencies": [d.to_dict() for d in self.dependencies],
        }


class QuestionDependency(Base):
    """question_id is only applicable when dependence_id has been answered with `answer`"""
    __tablename__ = "question_dependencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    dependence_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    answer = Column(Text, nullable=True)

    question = relationship("Question", foreign_keys=[question_id], back_populates="dependencies")
    dependency = relationship("Question", foreign_keys=[dependence_id])

    def to_dict(self):
        return {
            "id": self.id,
            "question_id": self.question_id,
            "dependence_id": self.dependence_id,
            "answer": self.answer,
        }


class QaPair(Base):
    """Booking-instance answer to one Question; updated in place on re-submit"""
    __tablename__ = "qa_pairs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    section_id = Column(Integer, ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="SET NULL"), nullable=True, index=True)
    question = Column(Text, nullable=True)  # snapshot of the display text at answer time
    question_type = Column(String(50), nullable=True)
    label = Column(String(255), nullable=True)
    answer = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    section = relationship("Section", back_populates="qa_pairs")
    question_ref = relationship("Question")

    @property
    def question_key(self):
        return self.question_ref.question_key if self.question_ref is not None else None

    def to_dict(self):
        return {
            "id": self.id,
            "section_id": self.section_id,
            "question_id": self.question_id,
            "question": self.question,
            "question_type": self.question_type,
            "question_key": self.question_key,
            "label": self.label,
            "answer": self.answer,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
