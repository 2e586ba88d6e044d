"""
Email trigger rules
A rule fires a templated email when its trigger questions are answered the expected way
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Integer, JSON

from core.database import Base


class EmailTrigger(Base):
    __tablename__ = "email_triggers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(30), default="internal")  # internal | external | highlights
    email_template = Column(String(100), nullable=False)  # rendering strategy discriminator
    recipient = Column(String(255), nullable=True)
    # [{"question": "...", "question_key": "...", "answer": "..." | [...] | null}]
    trigger_questions = Column(JSON, default=list)
    enabled = Column(Boolean, default=True)

    trigger_count = Column(Integer, default=0)
    last_triggered_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def conditions(self) -> list[dict]:
        """trigger_questions normalized to dicts; legacy rows stored bare question texts"""
        out = []
        for tq in (self.trigger_questions or []):
            if isinstance(tq, str):
                out.append({"question": tq, "question_key": None, "answer": None})
            elif isinstance(tq, dict):
                out.append({
                    "question": tq.get("question"),
                    "question_key": tq.get("question_key"),
                    "answer": tq.get("answer"),
                })
        return out

    def record_use(self):
        self.trigger_count = (self.trigger_count or 0) + 1
        self.last_triggered_at = datetime.utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "email_template": self.email_template,
            "recipient": self.recipient,
            "trigger_questions": self.trigger_questions or [],
            "enabled": bool(self.enabled),
            "trigger_count": self.trigger_count or 0,
            "last_triggered_at": self.last_triggered_at.isoformat() if self.last_triggered_at else None,
        }
